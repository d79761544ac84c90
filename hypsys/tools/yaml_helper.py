from typing import IO, Any, Union

import numpy as np
import yaml

TUP_TAG = "!tuple"


class ConfigDumper(yaml.SafeDumper):
    # no anchors/aliases for repeated tuples
    def ignore_aliases(self, data: Any) -> bool:  # type: ignore[override]
        return True


class ConfigLoader(yaml.SafeLoader):
    pass


def _repr_list(dumper: ConfigDumper, value: list) -> yaml.Node:
    return dumper.represent_sequence("tag:yaml.org,2002:seq", value, flow_style=True)


def _repr_tuple(dumper: ConfigDumper, value: tuple) -> yaml.Node:
    return dumper.represent_sequence(TUP_TAG, list(value), flow_style=True)


def _repr_np_float(dumper: ConfigDumper, value: np.floating) -> yaml.Node:
    return dumper.represent_float(float(value))


def _repr_np_int(dumper: ConfigDumper, value: np.integer) -> yaml.Node:
    return dumper.represent_int(int(value))


def _construct_tuple(loader: ConfigLoader, node: yaml.SequenceNode) -> tuple:
    return tuple(loader.construct_sequence(node))


ConfigDumper.add_representer(list, _repr_list)
ConfigDumper.add_representer(tuple, _repr_tuple)
ConfigDumper.add_multi_representer(np.floating, _repr_np_float)
ConfigDumper.add_multi_representer(np.integer, _repr_np_int)
ConfigLoader.add_constructor(TUP_TAG, _construct_tuple)


def yaml_dump(obj: Any) -> str:
    return yaml.dump(obj, Dumper=ConfigDumper, sort_keys=False, default_flow_style=None)


def yaml_load(src: Union[str, IO[str]]) -> Any:
    """
    Load YAML from a string or an open text file. Tuples written by `yaml_dump` are
    restored as tuples.
    """
    text = src.read() if hasattr(src, "read") else src
    return yaml.load(text, Loader=ConfigLoader)
