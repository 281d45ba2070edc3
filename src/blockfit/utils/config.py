from typing import Optional, TypedDict, Literal, Union, get_args
from pathlib import Path

import yaml

OutputFormat = Literal["plain", "json", "null"]
InitMethodName = Literal["greedy", "random"]
ConvergenceName = Literal["entropy"]


class FitConfig(TypedDict):
    output_format: OutputFormat
    num_groups: Optional[int]     # None -> select K by AIC
    min_groups: int
    max_groups: Optional[int]     # None -> floor(sqrt(num_nodes))
    num_samples: int              # <= 0 -> keep the chain running
    block_size: int
    init_method: InitMethodName
    convergence: ConvergenceName
    log_period: int
    random_seed: Optional[int]
    verbosity: int                # 0 quiet, 1 info, 2 debug
    trace_file: Optional[str]


DEFAULT_FIT_CONFIG: FitConfig = {
    "output_format": "plain",
    "num_groups": None,
    "min_groups": 2,
    "max_groups": None,
    "num_samples": 100000,
    "block_size": 65536,
    "init_method": "greedy",
    "convergence": "entropy",
    "log_period": 8192,
    "random_seed": None,
    "verbosity": 1,
    "trace_file": None,
}


def make_fit_config(**overrides) -> FitConfig:
    """
    Defaults updated with `overrides`; keys whose value is None in
    `overrides` keep their default. The result is validated.
    """
    unknown = set(overrides) - set(DEFAULT_FIT_CONFIG)
    if unknown:
        raise ValueError(f"Unknown configuration option(s): {', '.join(sorted(unknown))}")

    config: FitConfig = dict(DEFAULT_FIT_CONFIG) # type: ignore
    config.update({k: v for k, v in overrides.items() if v is not None}) # type: ignore
    validate_fit_config(config)
    return config


def load_fit_config(path: Union[str, Path]) -> FitConfig:
    """
    Read a YAML file of options (any subset of FitConfig) and merge it with
    the defaults.
    """
    path = Path(path)
    if not path.is_file():
        raise FileNotFoundError(f"File not found: {path}")

    raw = yaml.safe_load(path.read_text()) or {}
    if not isinstance(raw, dict):
        raise ValueError(f"Configuration file {path} must contain a mapping.")
    return make_fit_config(**raw)


def validate_fit_config(config: FitConfig) -> None:
    """ Raise ValueError for options the fitter cannot work with. """
    if config["output_format"] not in get_args(OutputFormat):
        raise ValueError(f"Unknown output format: {config['output_format']}")
    if config["init_method"] not in get_args(InitMethodName):
        raise ValueError(f"Unknown initialization method: {config['init_method']}")
    if config["convergence"] not in get_args(ConvergenceName):
        raise ValueError(f"Unknown convergence criterion: {config['convergence']}")

    if config["num_groups"] is not None and int(config["num_groups"]) < 1:
        raise ValueError("num_groups must be a positive integer.")
    if int(config["min_groups"]) < 1:
        raise ValueError("min_groups must be a positive integer.")
    if config["max_groups"] is not None and int(config["max_groups"]) < int(config["min_groups"]):
        raise ValueError("max_groups cannot be less than min_groups.")
    if int(config["block_size"]) < 1:
        raise ValueError("block_size must be a positive integer.")
    if int(config["log_period"]) < 1:
        raise ValueError("log_period must be a positive integer.")
