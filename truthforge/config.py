"""
TruthForge — Configuration System

All configuration is Pydantic-validated and loaded from:
1. truthforge.yaml (defaults, optional)
2. Environment variables (overrides, TRUTHFORGE_ prefix)

Every tunable parameter of the validation engine and its probes lives here.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# ─── Sub-configs ──────────────────────────────────────────────────


class GateConfig(BaseModel):
    # Minimum overall score (0-100) for a run to pass
    pass_threshold: int = 60
    # Fixed score contributions of the non-security steps
    test_suite_points: int = 20
    claim_check_points: int = 15


class ProbeConfig(BaseModel):
    # Per-probe timeout; a probe exceeding it degrades to an error record
    timeout_s: float = 5.0
    test_timeout_s: float = 60.0
    api_endpoints: list[str] = Field(
        default_factory=lambda: [
            "http://localhost:3000/api/health",
            "http://localhost:8080/health",
            "http://localhost:4000/graphql",
            "http://localhost:5000/api/status",
        ]
    )
    # Ports considered candidate UI / web servers
    ui_ports: list[int] = Field(
        default_factory=lambda: [
            *range(3000, 3010),
            *range(4000, 4010),
            *range(5000, 5010),
            *range(8000, 8010),
        ]
    )
    web_server_ports: list[int] = Field(
        default_factory=lambda: [3000, 3001, 4000, 5000, 8000, 8080, 9000]
    )
    benchmark_urls: list[str] = Field(
        default_factory=lambda: ["http://localhost:3000", "http://localhost:8080"]
    )
    # Cap on files read by source-scanning probes
    max_scanned_files: int = 20


class PathsConfig(BaseModel):
    root: str = "."
    token_file: str = ".truthforge/validation-passed"
    emergency_log_file: str = ".truthforge/emergency.log"
    report_dir: str = "validation"
    security_report_dir: str = "validation/security"
    failure_memory_file: str = "memory/failure-patterns.json"
    emergency_script: str = "./emergency-stop.sh"

    def resolve(self, relative: str) -> Path:
        path = Path(relative)
        return path if path.is_absolute() else Path(self.root) / path


class SecurityConfig(BaseModel):
    sensitive_file_patterns: list[str] = Field(
        default_factory=lambda: [
            ".env", ".env.local", ".env.production",
            "config.json", "secrets.json",
            "id_rsa", "id_dsa", "*.pem", "*.key",
            "database.yml", "wp-config.php",
        ]
    )
    # Directories never descended into by the scanning probes
    excluded_dirs: list[str] = Field(
        default_factory=lambda: [
            ".git", "node_modules", ".venv", "venv", "__pycache__", ".truthforge",
        ]
    )
    write_reports: bool = True


class BackupConfig(BaseModel):
    enabled: bool = True
    commit_message: str = "EMERGENCY: Catastrophic failure detected - auto backup"
    timeout_s: float = 30.0


class LoggingConfig(BaseModel):
    level: str = "INFO"
    format: str = "console"  # "console" | "json"


class TruthForgeConfig(BaseSettings):
    """
    Root configuration. Loads from YAML, overridable by env vars.
    """

    model_config = SettingsConfigDict(
        env_prefix="TRUTHFORGE_",
        env_nested_delimiter="__",
        extra="ignore",
    )

    validator_name: str = "TruthForge Core"

    gate: GateConfig = Field(default_factory=GateConfig)
    probes: ProbeConfig = Field(default_factory=ProbeConfig)
    paths: PathsConfig = Field(default_factory=PathsConfig)
    security: SecurityConfig = Field(default_factory=SecurityConfig)
    backup: BackupConfig = Field(default_factory=BackupConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    @model_validator(mode="after")
    def _check_gate(self) -> TruthForgeConfig:
        if not 0 <= self.gate.pass_threshold <= 100:
            raise ValueError("gate.pass_threshold must be within 0..100")
        return self


def _deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Recursively merge override into base."""
    result = base.copy()
    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = _deep_merge(result[key], value)
        else:
            result[key] = value
    return result


def load_config(config_path: str | Path | None = None) -> TruthForgeConfig:
    """
    Load configuration from YAML file, then apply environment variable overrides.

    Falls back to TRUTHFORGE_CONFIG_PATH when no path is given. A missing
    file is not an error; defaults apply.
    """
    raw: dict[str, Any] = {}

    config_path = config_path or os.environ.get("TRUTHFORGE_CONFIG_PATH")
    if config_path:
        path = Path(config_path)
        if path.exists():
            with open(path) as f:
                raw = yaml.safe_load(f) or {}

    overrides: dict[str, Any] = {}
    if root := os.environ.get("TRUTHFORGE_ROOT"):
        overrides.setdefault("paths", {})["root"] = root
    if level := os.environ.get("TRUTHFORGE_LOG_LEVEL"):
        overrides.setdefault("logging", {})["level"] = level
    if endpoints := os.environ.get("TRUTHFORGE_API_ENDPOINTS"):
        overrides.setdefault("probes", {})["api_endpoints"] = [
            e.strip() for e in endpoints.split(",") if e.strip()
        ]

    return TruthForgeConfig(**_deep_merge(raw, overrides))
