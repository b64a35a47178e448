"""Centralized path resolution for RecordEval.

All modules should import paths from here rather than computing them locally.
This module resolves paths relative to the project root (parent of src/).
"""

from __future__ import annotations

from pathlib import Path

# Project root: parent of the src/ directory
PROJECT_ROOT = Path(__file__).resolve().parent.parent

# Core directories
SRC_DIR = PROJECT_ROOT / "src"
CLI_DIR = PROJECT_ROOT / "cli"
TESTS_DIR = PROJECT_ROOT / "tests"

# Data and reference directories
REFERENCES_DIR = PROJECT_ROOT / "references"
CONFIGS_DIR = PROJECT_ROOT / "configs"
EXAMPLES_DIR = REFERENCES_DIR / "examples"

# Key reference files
SCRIPT_GRAMMAR_PATH = REFERENCES_DIR / "evalscript.lark"

# Run profiles
RUN_PROFILES_PATH = CONFIGS_DIR / "run_profiles.yaml"
