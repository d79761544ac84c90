import matplotlib.pyplot as plt

from hypsys import Configuration, OutputLoader, plot_2d, plot_timeseries, run_partitioned

# problem inputs
OUTPUT_NAME = "benchmarks/solid_body_rotation/plot.png"
PATH = "out/solid_body_rotation"
N = 32
P = 2
N_PARTITIONS = 4

config = Configuration(
    setup=1,
    nx=N,
    ny=N,
    order=P,
    scheme=1,
    ode_solver=3,
    dt=1e-3,
    final_time=1.0,
    vis_steps=50,
)
run_partitioned(config, N_PARTITIONS, path=PATH, overwrite=True, verbose=True)
sim = OutputLoader(PATH)
sim.print_timings()

fig, axs = plt.subplots(1, 3, figsize=(15, 4))
plot_2d(sim, axs[0], t=0.0, vmin=0, vmax=1)
axs[0].set_title(r"$t=0$")
plot_2d(sim, axs[1], colorbar=True, vmin=0, vmax=1)
axs[1].set_title(r"$t=1$")

plot_timeseries(sim, axs[2], "u_min", label=r"$\min u$")
plot_timeseries(sim, axs[2], "u_max", label=r"$\max u$")
axs[2].set_xlabel(r"$t$")
axs[2].legend()
fig.savefig(OUTPUT_NAME)
