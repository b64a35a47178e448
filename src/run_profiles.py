"""Run profile loader for RecordEval.

Loads named evaluation runs from configs/run_profiles.yaml. Each profile
names the selector expressions, classification maps and script of one
run, plus the run variant ("full" or "simple").

Usage:
    from run_profiles import load_profiles, get_profile, execute_profile

    config = load_profiles()
    p = get_profile("grading")
    outcome = execute_profile(evaluator, p, records)
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from evaluator import Evaluator, RunResult
from field_selectors import SelectorResolver
from grouping import Equivalence, same_key
from paths import PROJECT_ROOT, RUN_PROFILES_PATH

MODES = ("full", "simple")
_FULL_REQUIRED = ("result_key", "obs_key", "eval_key", "eval_based_key")


@dataclass
class RunProfile:
    """One configured evaluation run."""
    name: str
    item_key: Any
    script: str | None = None
    script_path: str | None = None
    mode: str = "full"
    item_display: Any = None  # defaults to item_key
    equivalence: list[str] = field(default_factory=list)  # empty: same item_key
    eval_key: Any = None
    eval_based_key: Any = None
    eval_based_display: Any = None  # defaults to eval_based_key
    result_key: Any = None
    obs_key: Any = None
    classes: dict[str, str] = field(default_factory=dict)
    subclasses: dict[str, str] = field(default_factory=dict)

    def resolved_script_path(self) -> Path | None:
        """Resolve script_path relative to project root if not absolute."""
        if self.script_path is None:
            return None
        p = Path(self.script_path)
        return p if p.is_absolute() else PROJECT_ROOT / p

    def load_script(self) -> str:
        if self.script is not None:
            return self.script
        path = self.resolved_script_path()
        if path is None:
            raise ValueError(f"Profile '{self.name}' has neither script nor script_path")
        if not path.exists():
            raise FileNotFoundError(f"Script not found for profile '{self.name}': {path}")
        return path.read_text()

    def equivalence_predicate(self, resolver: SelectorResolver) -> Equivalence | None:
        """Records are related when all ``equivalence`` fields match."""
        if not self.equivalence:
            return None
        return same_key(resolver.compile_key(list(self.equivalence)))


@dataclass
class RunProfileConfig:
    """Complete parsed configuration."""
    profiles: dict[str, RunProfile]
    default_profile: str


def _as_selector(value: Any) -> Any:
    # YAML lists are composite selectors
    return list(value) if isinstance(value, (list, tuple)) else value


def _parse_profile(name: str, pdata: Any, path: Path) -> RunProfile:
    if not isinstance(pdata, dict):
        raise ValueError(f"Invalid profile '{name}' in {path}: expected a mapping")
    if "item_key" not in pdata:
        raise ValueError(f"Profile '{name}' in {path} is missing 'item_key'")

    mode = pdata.get("mode", "full")
    if mode not in MODES:
        raise ValueError(f"Profile '{name}' has unknown mode '{mode}' (expected one of {MODES})")
    if mode == "full":
        missing = [k for k in _FULL_REQUIRED if pdata.get(k) is None]
        if missing:
            raise ValueError(f"Full-run profile '{name}' is missing: {', '.join(missing)}")
    if pdata.get("script") is None and pdata.get("script_path") is None:
        raise ValueError(f"Profile '{name}' needs 'script' or 'script_path'")

    equivalence = pdata.get("equivalence") or []
    if isinstance(equivalence, str):
        equivalence = [equivalence]

    return RunProfile(
        name=name,
        item_key=_as_selector(pdata["item_key"]),
        script=pdata.get("script"),
        script_path=pdata.get("script_path"),
        mode=mode,
        item_display=_as_selector(pdata.get("item_display")),
        equivalence=[str(e) for e in equivalence],
        eval_key=_as_selector(pdata.get("eval_key")),
        eval_based_key=_as_selector(pdata.get("eval_based_key")),
        eval_based_display=_as_selector(pdata.get("eval_based_display")),
        result_key=_as_selector(pdata.get("result_key")),
        obs_key=_as_selector(pdata.get("obs_key")),
        classes={str(k): str(v) for k, v in (pdata.get("classes") or {}).items()},
        subclasses={str(k): str(v) for k, v in (pdata.get("subclasses") or {}).items()},
    )


def load_profiles(config_path: str | Path | None = None) -> RunProfileConfig:
    """Load run profiles from YAML config.

    Args:
        config_path: Path to config file. Defaults to configs/run_profiles.yaml.

    Returns:
        RunProfileConfig with all profiles.

    Raises:
        FileNotFoundError: If config file doesn't exist.
        ValueError: If config is malformed.
    """
    path = Path(config_path) if config_path else RUN_PROFILES_PATH

    if not path.exists():
        raise FileNotFoundError(f"Run profile config not found: {path}")

    with open(path) as f:
        raw = yaml.safe_load(f)

    if not isinstance(raw, dict) or not isinstance(raw.get("profiles"), dict):
        raise ValueError(f"Invalid run profile config: missing 'profiles' key in {path}")

    profiles = {name: _parse_profile(name, pdata, path) for name, pdata in raw["profiles"].items()}
    if not profiles:
        raise ValueError(f"No profiles defined in {path}")

    default_name = raw.get("default_profile", next(iter(profiles)))
    if default_name not in profiles:
        raise ValueError(
            f"Default profile '{default_name}' not found in profiles: "
            f"{list(profiles.keys())}"
        )

    return RunProfileConfig(profiles=profiles, default_profile=default_name)


def get_profile(name: str | None = None, config_path: str | Path | None = None) -> RunProfile:
    """Get a single profile by name (the default profile when name is None).

    Raises:
        KeyError: If profile name doesn't exist.
    """
    config = load_profiles(config_path)
    name = name or config.default_profile
    if name not in config.profiles:
        raise KeyError(
            f"Profile '{name}' not found. Available: {list(config.profiles.keys())}"
        )
    return config.profiles[name]


def execute_profile(
    evaluator: Evaluator,
    profile: RunProfile,
    records: list,
    script: str | None = None,
) -> RunResult | str:
    """Run ``profile`` over ``records``; ``script`` overrides the profile's.

    Returns the RunResult of a full run or the status string of a simple one.
    """
    text = script if script is not None else profile.load_script()
    equivalence = profile.equivalence_predicate(evaluator.resolver)

    if profile.mode == "simple":
        return evaluator.run_simple(
            records,
            item_key=profile.item_key,
            item_equivalence=equivalence,
            script=text,
            classes=profile.classes,
            subclasses=profile.subclasses,
            result_key=profile.result_key,
        )

    return evaluator.run(
        records,
        item_display_value=profile.item_display if profile.item_display is not None else profile.item_key,
        item_key=profile.item_key,
        item_equivalence=equivalence,
        eval_key=profile.eval_key,
        eval_based_key=profile.eval_based_key,
        eval_based_key_display_value=(
            profile.eval_based_display if profile.eval_based_display is not None else profile.eval_based_key
        ),
        result_key=profile.result_key,
        obs_key=profile.obs_key,
        script=text,
        classes=profile.classes,
        subclasses=profile.subclasses,
    )
