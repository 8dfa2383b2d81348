"""
Configuration Validation Module
Validates backend configuration on startup
"""
import logging
from typing import Dict, List, Optional, Tuple
from dataclasses import dataclass

from callflow.core.config import Settings

logger = logging.getLogger(__name__)

SESSION_BACKENDS = ("memory", "redis", "supabase")
DIRECTORY_BACKENDS = ("memory", "supabase")


@dataclass
class ValidationResult:
    """Result of a configuration validation check."""
    component: str
    setting: str
    is_valid: bool
    message: str


class ConfigValidator:
    """
    Validates storage configuration at startup.

    Checks that the selected backends exist and that the settings they
    need are present before the application starts accepting webhooks.
    """

    # Settings each backend needs
    REQUIRED_SETTINGS: Dict[str, List[Tuple[str, str]]] = {
        "supabase": [
            ("supabase_url", "SUPABASE_URL"),
            ("supabase_service_key", "SUPABASE_SERVICE_KEY"),
        ],
        "redis": [("redis_url", "REDIS_URL")],
        "memory": [],
    }

    def __init__(self, settings: Settings, strict: bool = False):
        """
        Initialize validator.

        Args:
            settings: Application settings
            strict: If True, treat warnings as errors
        """
        self.settings = settings
        self.strict = strict
        self.results: List[ValidationResult] = []

    def validate_all(self) -> Tuple[bool, List[ValidationResult]]:
        """
        Validate backend selection and required settings.

        Returns:
            Tuple of (all_valid, list of results)
        """
        self.results = []

        self._validate_backend("sessions", self.settings.session_backend, SESSION_BACKENDS)
        self._validate_backend("directory", self.settings.directory_backend, DIRECTORY_BACKENDS)

        if self.settings.session_backend == "memory":
            self._add_warning(
                "sessions", "SESSION_BACKEND",
                "In-memory session store: sessions are lost on restart and not shared between workers"
            )

        errors = [r for r in self.results if not r.is_valid]
        return len(errors) == 0, self.results

    def _validate_backend(self, component: str, backend: str, allowed: Tuple[str, ...]) -> None:
        if backend not in allowed:
            self._add_error(
                component, backend,
                f"Unknown {component} backend '{backend}'. Available: {', '.join(allowed)}"
            )
            return

        for attr, env_var in self.REQUIRED_SETTINGS[backend]:
            if getattr(self.settings, attr):
                self._add_success(component, env_var, f"{backend} backend: {env_var} configured")
            else:
                self._add_error(
                    component, env_var,
                    f"{backend} backend requires {env_var} to be set"
                )

    def _add_success(self, component: str, setting: str, message: str):
        self.results.append(ValidationResult(component, setting, True, message))

    def _add_error(self, component: str, setting: str, message: str):
        self.results.append(ValidationResult(component, setting, False, message))

    def _add_warning(self, component: str, setting: str, message: str):
        """Add warning validation result."""
        self.results.append(ValidationResult(
            component=component,
            setting=setting,
            is_valid=not self.strict,  # Warnings become errors in strict mode
            message=f"WARNING: {message}"
        ))

    def log_results(self):
        """Log all validation results."""
        for r in self.results:
            if not r.is_valid:
                logger.error(f"[{r.component}] {r.message}")
            elif r.message.startswith("WARNING"):
                logger.warning(f"[{r.component}] {r.message}")
            else:
                logger.info(f"[{r.component}] {r.message}")

    def get_error_summary(self) -> Optional[str]:
        """Get summary of errors for exception message."""
        errors = [r for r in self.results if not r.is_valid]
        if not errors:
            return None

        lines = ["Configuration errors:"]
        for r in errors:
            lines.append(f"  - {r.setting}: {r.message}")
        return "\n".join(lines)


def validate_config_on_startup(settings: Settings, strict: bool = False) -> None:
    """
    Validate configuration at startup.

    Args:
        settings: Application settings
        strict: If True, fail on warnings too

    Raises:
        RuntimeError: If required configuration is missing
    """
    validator = ConfigValidator(settings, strict=strict)
    all_valid, _ = validator.validate_all()
    validator.log_results()

    if not all_valid:
        raise RuntimeError(validator.get_error_summary())

    logger.info("Configuration validated successfully")
