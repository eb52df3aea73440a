from pathlib import Path
import re

from velocity.exceptions import ConfigurationError, SecurityError


MAX_CONFIG_BYTES = 1024 * 1024
MAX_PR_NUMBER = 2147483647

SECRET_PATTERNS: tuple[tuple[str, str], ...] = (
    (r"https?://[^:/\s]+:[^@\s]+@[^\s]+", "https://[REDACTED]@..."),
    (r"ghp_[A-Za-z0-9]+", "ghp_[REDACTED]"),
    (r"gh[ousr]_[A-Za-z0-9]+", "gh_[REDACTED]"),
    (r"github_pat_[A-Za-z0-9_]+", "github_pat_[REDACTED]"),
    (r"(password|token|secret|api_key|apikey)=[^\s]+", r"\1=[REDACTED]"),
    (r"(Authorization):\s*(Bearer|token)\s+[^\s]+", r"\1: [REDACTED]"),
    (r"eyJ[A-Za-z0-9_\-]+\.eyJ[A-Za-z0-9_\-]+\.[A-Za-z0-9_\-]+", "[JWT_REDACTED]"),
)


class SecurityValidator:
    FORBIDDEN_OUTPUT_DIRS = ("/etc", "/sys", "/proc", "/boot", "/dev")
    SENSITIVE_FILE_PATTERNS = (
        ".ssh/",
        ".bashrc",
        ".bash_profile",
        ".zshrc",
        ".gitconfig",
        "passwd",
        "shadow",
        "sudoers",
    )

    @staticmethod
    def validate_config_path(path: str) -> Path:
        if not path:
            raise ConfigurationError("Config path cannot be empty")

        resolved = Path(path).resolve()
        if not resolved.exists():
            raise ConfigurationError(f"Config file not found: {path}")
        if resolved.is_dir():
            raise ConfigurationError("Config path must be a file, not a directory")
        if resolved.suffix not in {".yaml", ".yml"}:
            raise ConfigurationError("Config file must be .yaml or .yml")
        if resolved.stat().st_size > MAX_CONFIG_BYTES:
            raise ConfigurationError(
                f"Config file too large (max {MAX_CONFIG_BYTES} bytes)"
            )
        return resolved

    @staticmethod
    def validate_output_path(path: str) -> Path:
        if not path:
            raise SecurityError("Output path cannot be empty")

        expanded = Path(path).expanduser()
        resolved = expanded.resolve()
        resolved_str = str(resolved)

        for pattern in SecurityValidator.SENSITIVE_FILE_PATTERNS:
            if pattern in resolved_str:
                raise SecurityError("Cannot overwrite sensitive file")
        for forbidden in SecurityValidator.FORBIDDEN_OUTPUT_DIRS:
            if resolved_str == forbidden or resolved_str.startswith(f"{forbidden}/"):
                raise SecurityError(f"Cannot write to system directory: {forbidden}")

        if expanded.is_symlink():
            raise SecurityError("Symlinks are not allowed for output paths")
        if resolved.exists() and not resolved.is_file():
            raise SecurityError("Output path must be a file, not a directory")

        return resolved

    @staticmethod
    def validate_pr_number(value: str) -> int:
        """argparse ``type`` for pull request numbers."""
        if not value or not value.strip():
            raise ValueError("PR number cannot be empty")
        try:
            number = int(value.strip())
        except ValueError as e:
            raise ValueError(f"Invalid PR number format: {value}") from e
        if not 1 <= number <= MAX_PR_NUMBER:
            raise ValueError(f"PR number out of valid range: {number}")
        return number

    @staticmethod
    def sanitize_for_logging(text: str) -> str:
        if not text:
            return text
        for pattern, replacement in SECRET_PATTERNS:
            text = re.sub(pattern, replacement, text, flags=re.IGNORECASE)
        return text

    @staticmethod
    def sanitize_error_message(error: Exception) -> str:
        sanitized = SecurityValidator.sanitize_for_logging(str(error))
        # keep only the file name of absolute paths
        return re.sub(r"/[/\w\-\.]+/([\w\-]+\.\w+)", r"\1", sanitized)
