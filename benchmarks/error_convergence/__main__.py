import os
from itertools import product

import matplotlib.pyplot as plt
import pandas as pd

from hypsys import Configuration, HyperbolicSolver
from hypsys.visualization import plot_power_law_fit

# problem inputs
OUTPUT_NAME = "benchmarks/error_convergence/plot.png"
N_LIST = [16, 32, 64, 128, 256]
P_LIST = [0, 1, 2, 3]
SCHEMES = {0: "Galerkin", 1: "MCL"}
OTHER_INPUTS = dict(setup=2, ny=1, ode_solver=3, final_time=1.0)

# remove old output
if os.path.exists(OUTPUT_NAME):
    os.remove(OUTPUT_NAME)

# loop over all combinations of scheme, N and p
data = []
for scheme, N, p in product(SCHEMES, N_LIST, P_LIST):
    # print status
    print(f"Running scheme={SCHEMES[scheme]}, N={N}, p={p}")

    # probe the bounds-preserving step and use half of it
    probe = HyperbolicSolver(Configuration(nx=N, order=p, scheme=1, **OTHER_INPUTS))
    dt = 0.5 * probe.max_stable_dt

    solver = HyperbolicSolver(
        Configuration(nx=N, order=p, scheme=scheme, dt=dt, **OTHER_INPUTS)
    )
    solver.run(verbose=False)
    data.append(dict(scheme=SCHEMES[scheme], N=N, p=p, **solver.errors))
df = pd.DataFrame(data)
df.to_csv(OUTPUT_NAME.replace(".png", ".csv"), index=False)

# plot error curves of p over N
fig, axs = plt.subplots(1, len(SCHEMES), sharey=True, figsize=(10, 4))
cmap = plt.get_cmap("viridis")

for ax, name in zip(axs, SCHEMES.values()):
    for p in P_LIST:
        df_p = df[(df["scheme"] == name) & (df["p"] == p)]
        ax.plot(
            df_p["N"],
            df_p["L1"],
            label=f"p={p}",
            marker="o",
            linestyle="none",
            color=cmap(p / max(P_LIST)),
        )
        plot_power_law_fit(
            ax, df_p["N"].to_numpy(), df_p["L1"].to_numpy(), color="grey", linestyle="--"
        )
    ax.set_xscale("log", base=2)
    ax.set_yscale("log")
    ax.set_xlabel("N")
    ax.set_title(name)
axs[0].set_ylabel("L1 error")
axs[0].legend()
fig.savefig(OUTPUT_NAME)
