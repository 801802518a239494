from __future__ import annotations

import math
from copy import deepcopy
from pathlib import Path
from typing import Any, Dict, Mapping

import yaml

from .anisotropy import Anisotropy
from .driver import EstimationConfig
from .grid import GridSpec, grid_from_extents
from .samples import SampleSet
from .search import SearchParameters
from .variography import VariogramModel, VariogramStructure

Number = (int, float)

DEFAULT_CONFIG: Dict[str, Any] = {
    "data": {
        "path": "data/samples.csv",
        "x_col": "X",
        "y_col": "Y",
        "value_col": "value",
        "nodata_values": [],
    },
    "transforms": {"normal_score": {"enabled": False, "back_transform": True}},
    "grid": {
        "auto_from_data": True,
        "pad": 0.0,
        "xsize": 10.0,
        "ysize": 10.0,
        "nx": None,
        "ny": None,
        "xmin": None,
        "ymin": None,
    },
    "estimation": {
        "method": "ordinary_kriging",
        "power": 2.0,
        "on_failure": "missing",
        "condition_max": 1.0e10,
    },
    "variogram": {
        "nugget": 0.0,
        "structures": [
            {"type": "exponential", "sill": 1.0, "range": 100.0, "azimuth": 0.0, "ratio": 1.0},
        ],
    },
    "search": {
        "max_distance": None,
        "min_neighbors": 1,
        "max_per_sector": None,
        "sectors": 4,
        "max_samples": None,
        "anisotropy": None,
        "use_index": True,
    },
    "validation": {"enabled": True, "cv": "loo", "kfold_splits": 5},
    "execution": {"n_workers": 1, "chunk_size": None},
    "outputs": {"base_dir": "outputs", "run_name": "auto"},
}

SCHEMA: Dict[str, Any] = {
    "data": {
        "path": (str,),
        "x_col": (str,),
        "y_col": (str,),
        "value_col": (str,),
        "nodata_values": [Number + (str,)],
    },
    "transforms": {"normal_score": {"enabled": (bool,), "back_transform": (bool,)}},
    "grid": {
        "auto_from_data": (bool,),
        "pad": Number,
        "xsize": Number,
        "ysize": Number,
        "nx": (int, type(None)),
        "ny": (int, type(None)),
        "xmin": Number + (type(None),),
        "ymin": Number + (type(None),),
    },
    "estimation": {
        "method": (str,),
        "power": Number,
        "on_failure": (str,),
        "condition_max": Number,
    },
    "variogram": {"nugget": Number, "structures": [dict]},
    "search": {
        "max_distance": Number + (type(None),),
        "min_neighbors": (int,),
        "max_per_sector": (int, type(None)),
        "sectors": (int,),
        "max_samples": (int, type(None)),
        "anisotropy": (dict, type(None)),
        "use_index": (bool,),
    },
    "validation": {"enabled": (bool,), "cv": (str,), "kfold_splits": (int,)},
    "execution": {"n_workers": (int,), "chunk_size": (int, type(None))},
    "outputs": {"base_dir": (str,), "run_name": (str,)},
}

STRUCTURE_KEYS = {"type", "sill", "range", "azimuth", "ratio"}


def _deep_merge(defaults: Mapping[str, Any], overrides: Mapping[str, Any]) -> Dict[str, Any]:
    merged: Dict[str, Any] = deepcopy(defaults)
    for key, value in overrides.items():
        if isinstance(value, Mapping) and isinstance(merged.get(key), Mapping):
            merged[key] = _deep_merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def _validate_schema(cfg: Mapping[str, Any], schema: Mapping[str, Any], prefix: str = "") -> None:
    for key, expected in schema.items():
        if key not in cfg:
            continue
        value = cfg[key]
        path = f"{prefix}{key}"
        if isinstance(expected, Mapping):
            if not isinstance(value, Mapping):
                raise TypeError(f"Config key '{path}' must be a mapping, got {type(value).__name__}")
            _validate_schema(value, expected, prefix=f"{path}.")
            continue

        if isinstance(expected, list):
            if len(expected) != 1:
                raise ValueError(f"Schema for '{path}' must have a single list item type definition")
            if not isinstance(value, list):
                raise TypeError(f"Config key '{path}' must be a list, got {type(value).__name__}")
            allowed = expected[0]
            for idx, item in enumerate(value):
                if not isinstance(item, allowed):
                    raise TypeError(
                        f"Config key '{path}[{idx}]' must be {allowed}, got {type(item).__name__}"
                    )
            continue

        if not isinstance(value, expected):
            raise TypeError(f"Config key '{path}' must be {expected}, got {type(value).__name__}")


def resolve_config(overrides: Mapping[str, Any] | None = None) -> Dict[str, Any]:
    """Merge ``overrides`` over the defaults and type-check the result."""
    cfg = _deep_merge(DEFAULT_CONFIG, overrides or {})
    _validate_schema(cfg, SCHEMA)

    method = cfg["estimation"]["method"]
    if method not in {"inverse_distance", "ordinary_kriging"}:
        raise ValueError("estimation.method must be 'inverse_distance' or 'ordinary_kriging'")
    if cfg["validation"]["cv"] not in {"loo", "kfold"}:
        raise ValueError("validation.cv must be 'loo' or 'kfold'")
    for idx, structure in enumerate(cfg["variogram"]["structures"]):
        unknown = set(structure) - STRUCTURE_KEYS
        if unknown:
            raise KeyError(f"Unknown keys in variogram.structures[{idx}]: {sorted(unknown)}")
        if "type" not in structure or "sill" not in structure:
            raise KeyError(f"variogram.structures[{idx}] needs 'type' and 'sill'")
    return cfg


def load_config(path: str | Path) -> Dict[str, Any]:
    cfg_path = Path(path)
    if not cfg_path.exists():
        raise FileNotFoundError(f"Config file not found: {cfg_path}")

    data = yaml.safe_load(cfg_path.read_text(encoding="utf-8"))
    if data is None:
        data = {}
    if not isinstance(data, Mapping):
        raise TypeError("Config file must be a YAML mapping (dictionary).")
    return resolve_config(data)


def save_config(config: Mapping[str, Any], path: str | Path) -> None:
    cfg_path = Path(path)
    cfg_path.parent.mkdir(parents=True, exist_ok=True)
    cfg_path.write_text(yaml.safe_dump(dict(config), sort_keys=False, allow_unicode=True), encoding="utf-8")


def build_variogram_model(config: Mapping[str, Any]) -> VariogramModel:
    vario = config["variogram"]
    structures = tuple(
        VariogramStructure(
            kind=str(item["type"]).lower(),
            sill=float(item["sill"]),
            range=float(item.get("range", 1.0)),
            anisotropy=Anisotropy(float(item.get("azimuth", 0.0)), float(item.get("ratio", 1.0))),
        )
        for item in vario["structures"]
    )
    model = VariogramModel(nugget=float(vario["nugget"]), structures=structures)
    model.validate()
    return model


def build_search_parameters(config: Mapping[str, Any]) -> SearchParameters:
    search = config["search"]
    max_distance = search["max_distance"]
    aniso_cfg = search.get("anisotropy")
    anisotropy = None
    if aniso_cfg:
        anisotropy = Anisotropy(float(aniso_cfg.get("azimuth", 0.0)), float(aniso_cfg.get("ratio", 1.0)))
    params = SearchParameters(
        max_distance=math.inf if max_distance is None else float(max_distance),
        min_neighbors=int(search["min_neighbors"]),
        max_per_sector=search["max_per_sector"],
        sectors=int(search["sectors"]),
        max_samples=search["max_samples"],
        anisotropy=anisotropy,
        use_index=bool(search["use_index"]),
    )
    params.validate()
    return params


def build_estimation_config(config: Mapping[str, Any]) -> EstimationConfig:
    est = config["estimation"]
    method = est["method"]
    estimation = EstimationConfig(
        method=method,
        power=float(est["power"]),
        model=build_variogram_model(config) if method == "ordinary_kriging" else None,
        search=build_search_parameters(config),
        on_failure=est["on_failure"],
        condition_max=float(est["condition_max"]),
    )
    estimation.validate()
    return estimation


def build_grid_spec(config: Mapping[str, Any], samples: SampleSet | None = None) -> GridSpec:
    grid_cfg = config["grid"]
    if grid_cfg["auto_from_data"]:
        if samples is None:
            raise ValueError("grid.auto_from_data requires samples")
        return grid_from_extents(samples, float(grid_cfg["xsize"]), float(grid_cfg["ysize"]), pad=float(grid_cfg["pad"]))
    missing = [key for key in ("nx", "ny", "xmin", "ymin") if grid_cfg[key] is None]
    if missing:
        raise KeyError(f"grid.{', grid.'.join(missing)} required when grid.auto_from_data is false")
    spec = GridSpec(
        nx=int(grid_cfg["nx"]),
        ny=int(grid_cfg["ny"]),
        xmin=float(grid_cfg["xmin"]),
        ymin=float(grid_cfg["ymin"]),
        xsize=float(grid_cfg["xsize"]),
        ysize=float(grid_cfg["ysize"]),
    )
    spec.validate()
    return spec
