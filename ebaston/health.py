"""Startup health checks for the completion provider and the data store."""

import os
from dataclasses import dataclass, field

import requests
from sqlalchemy.exc import SQLAlchemyError

from ebaston.config_loader import validate_config
from ebaston.database import DatabaseManager
from ebaston.logging_config import get_logger

log = get_logger(__name__)


@dataclass
class CheckResult:
    name: str
    status: str  # "pass", "fail", "warn"
    detail: str = ""


@dataclass
class HealthReport:
    checks: list[CheckResult] = field(default_factory=list)

    @property
    def has_critical_failure(self) -> bool:
        return any(c.status == "fail" for c in self.checks)

    def summary_lines(self) -> list[str]:
        lines = []
        for c in self.checks:
            icon = {"pass": "[green]PASS[/green]", "fail": "[red]FAIL[/red]", "warn": "[yellow]WARN[/yellow]"}
            lines.append(f"  {icon.get(c.status, c.status):>20s}  {c.name}: {c.detail}")
        return lines


def check_config(config: dict) -> CheckResult:
    errors = validate_config(config)
    if errors:
        return CheckResult("Config", "fail", "; ".join(errors))
    return CheckResult("Config", "pass", "Valid")


def check_api_key(provider: str, api_key: str | None) -> CheckResult:
    """Hosted providers need a key before the first command."""
    if api_key:
        return CheckResult(f"Provider '{provider}'", "pass", "API key configured")
    env = f"{provider.upper()}_API_KEY"
    return CheckResult(
        f"Provider '{provider}'", "fail",
        f"No API key. Set {env} (commands will fall back to local matching)",
    )


def check_ollama(base_url: str, model: str) -> list[CheckResult]:
    """Check Ollama connectivity and model availability."""
    results = []

    try:
        resp = requests.get(f"{base_url}/api/tags", timeout=5)
        resp.raise_for_status()
    except requests.ConnectionError:
        results.append(CheckResult("Ollama", "fail", f"Cannot connect to {base_url}"))
        return results
    except requests.RequestException as e:
        results.append(CheckResult("Ollama", "fail", f"Error: {e}"))
        return results

    results.append(CheckResult("Ollama", "pass", f"Connected to {base_url}"))

    available = {m["name"].split(":")[0] for m in resp.json().get("models", [])}
    if model in available:
        results.append(CheckResult(f"Model '{model}'", "pass", "Available"))
    else:
        results.append(CheckResult(f"Model '{model}'", "fail", f"Not pulled. Run: ollama pull {model}"))
    return results


def check_database(db_path: str) -> CheckResult:
    """Check that the store opens and its tables can be created."""
    path = os.path.expanduser(db_path)
    try:
        DatabaseManager(path).init_db()
    except (SQLAlchemyError, OSError) as e:
        log.error("Database check failed for %s: %s", path, e)
        return CheckResult("Database", "fail", f"Cannot open {path}: {e}")
    return CheckResult("Database", "pass", path)


def run_health_checks(config: dict) -> HealthReport:
    """Run all startup health checks and return a report."""
    report = HealthReport()
    report.checks.append(check_config(config))

    provider = config.get("provider", "groq")
    section = config.get(provider, {})
    if provider == "ollama":
        report.checks.extend(
            check_ollama(section.get("base_url", "http://localhost:11434"), section.get("model", "gemma3"))
        )
    else:
        report.checks.append(check_api_key(provider, section.get("api_key")))

    report.checks.append(check_database(config.get("database", {}).get("path", "")))
    return report
