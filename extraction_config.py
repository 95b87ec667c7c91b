#!/usr/bin/env python3
"""
Configuration Management for Transcript Extraction

This module provides centralized configuration for panel acquisition,
list stabilization and summarization. It loads settings from environment
variables with sensible defaults and provides validation. Timing values
are tunable; none of them is load-bearing for correctness.
"""

import os
from dataclasses import dataclass, asdict
from typing import Optional, Dict, Any

from logging_setup import get_logger

logger = get_logger(__name__)


@dataclass
class ExtractionConfig:
    """Configuration for one extractor process."""

    # Session budget
    overall_budget_ms: int = 60000

    # Stabilization
    poll_interval_ms: int = 200
    stable_threshold: int = 3
    confirm_pause_ms: int = 800
    max_iterations: int = 40

    # Renderer lookup after the panel opens
    renderer_wait_ms: int = 8000
    renderer_poll_ms: int = 250

    # Per-strategy settle durations
    toggle_settle_ms: int = 600
    label_settle_ms: int = 800
    menu_open_settle_ms: int = 600
    menu_settle_ms: int = 1500
    forced_settle_ms: int = 300
    close_settle_ms: int = 150

    # Browser
    playwright_navigation_timeout: int = 60
    playwright_headless: bool = True

    # Summarization
    openai_model: str = "gpt-4o-mini"
    summary_max_chars: int = 24000

    @classmethod
    def from_env(cls) -> 'ExtractionConfig':
        """Load configuration from environment variables with validation."""
        try:
            config = cls(
                overall_budget_ms=cls._parse_int_env("TRANSCRIPT_OVERALL_BUDGET_MS", 60000, min_val=5000, max_val=600000),

                poll_interval_ms=cls._parse_int_env("TRANSCRIPT_POLL_INTERVAL_MS", 200, min_val=50, max_val=5000),
                stable_threshold=cls._parse_int_env("TRANSCRIPT_STABLE_THRESHOLD", 3, min_val=1, max_val=20),
                confirm_pause_ms=cls._parse_int_env("TRANSCRIPT_CONFIRM_PAUSE_MS", 800, min_val=0, max_val=10000),
                max_iterations=cls._parse_int_env("TRANSCRIPT_MAX_ITERATIONS", 40, min_val=1, max_val=1000),

                renderer_wait_ms=cls._parse_int_env("TRANSCRIPT_RENDERER_WAIT_MS", 8000, min_val=0, max_val=60000),
                renderer_poll_ms=cls._parse_int_env("TRANSCRIPT_RENDERER_POLL_MS", 250, min_val=50, max_val=5000),

                toggle_settle_ms=cls._parse_int_env("TRANSCRIPT_TOGGLE_SETTLE_MS", 600, min_val=0, max_val=10000),
                label_settle_ms=cls._parse_int_env("TRANSCRIPT_LABEL_SETTLE_MS", 800, min_val=0, max_val=10000),
                menu_open_settle_ms=cls._parse_int_env("TRANSCRIPT_MENU_OPEN_SETTLE_MS", 600, min_val=0, max_val=10000),
                menu_settle_ms=cls._parse_int_env("TRANSCRIPT_MENU_SETTLE_MS", 1500, min_val=0, max_val=10000),
                forced_settle_ms=cls._parse_int_env("TRANSCRIPT_FORCED_SETTLE_MS", 300, min_val=0, max_val=10000),
                close_settle_ms=cls._parse_int_env("TRANSCRIPT_CLOSE_SETTLE_MS", 150, min_val=0, max_val=5000),

                playwright_navigation_timeout=cls._parse_int_env("PLAYWRIGHT_NAVIGATION_TIMEOUT", 60, min_val=10, max_val=180),
                playwright_headless=cls._parse_bool_env("PLAYWRIGHT_HEADLESS", True),

                openai_model=os.getenv("OPENAI_MODEL", "gpt-4o-mini").strip() or "gpt-4o-mini",
                summary_max_chars=cls._parse_int_env("SUMMARY_MAX_CHARS", 24000, min_val=1000, max_val=200000),
            )

            config._validate_config()
            config._log_config()

            return config

        except Exception as e:
            logger.error(f"Failed to load extraction configuration: {e}")
            logger.warning("Using default extraction configuration")
            return cls()

    @staticmethod
    def _parse_bool_env(env_var: str, default: bool) -> bool:
        """Parse boolean environment variable."""
        value = os.getenv(env_var, str(default).lower())
        return value.lower() in ("1", "true", "yes", "on")

    @staticmethod
    def _parse_int_env(env_var: str, default: int, min_val: Optional[int] = None, max_val: Optional[int] = None) -> int:
        """Parse integer environment variable, clamped to [min_val, max_val]."""
        try:
            value = int(os.getenv(env_var, str(default)))

            if min_val is not None and value < min_val:
                logger.warning(f"{env_var}={value} is below minimum {min_val}, using {min_val}")
                return min_val

            if max_val is not None and value > max_val:
                logger.warning(f"{env_var}={value} is above maximum {max_val}, using {max_val}")
                return max_val

            return value

        except (ValueError, TypeError):
            logger.error(f"Invalid value for {env_var}: {os.getenv(env_var)}, using default {default}")
            return default

    def _validate_config(self) -> None:
        """Log warnings for problematic combinations."""
        warnings = []

        worst_case_stabilization = self.max_iterations * self.poll_interval_ms
        if worst_case_stabilization >= self.overall_budget_ms:
            warnings.append(
                f"Stabilization worst case ({worst_case_stabilization}ms) exceeds overall budget "
                f"({self.overall_budget_ms}ms) - long transcripts may be cut short"
            )

        if self.menu_settle_ms < self.toggle_settle_ms:
            warnings.append("Menu settle is shorter than direct toggle settle - menu transitions may not finish")

        if self.renderer_poll_ms > self.renderer_wait_ms > 0:
            warnings.append("Renderer poll interval exceeds renderer wait budget - only one poll will run")

        for warning in warnings:
            logger.warning(f"Configuration warning: {warning}")

    def _log_config(self) -> None:
        """Log current configuration for debugging."""
        logger.info("Extraction configuration loaded:")
        logger.info(f"  Budget: overall={self.overall_budget_ms}ms, renderer_wait={self.renderer_wait_ms}ms")
        logger.info(f"  Stabilization: poll={self.poll_interval_ms}ms, threshold={self.stable_threshold}, "
                    f"confirm={self.confirm_pause_ms}ms, max_iterations={self.max_iterations}")
        logger.info(f"  Settles: toggle={self.toggle_settle_ms}ms, label={self.label_settle_ms}ms, "
                    f"menu={self.menu_open_settle_ms}/{self.menu_settle_ms}ms, forced={self.forced_settle_ms}ms")
        logger.info(f"  Summary: model={self.openai_model}, max_chars={self.summary_max_chars}")

    def to_dict(self) -> Dict[str, Any]:
        """Convert configuration to dictionary for serialization."""
        return asdict(self)


# Process-wide configuration, loaded lazily
_extraction_config: Optional[ExtractionConfig] = None


def get_extraction_config() -> ExtractionConfig:
    """Get the process-wide extraction configuration."""
    global _extraction_config
    if _extraction_config is None:
        _extraction_config = ExtractionConfig.from_env()
    return _extraction_config


def reload_extraction_config() -> ExtractionConfig:
    """Reload configuration from environment variables."""
    global _extraction_config
    _extraction_config = ExtractionConfig.from_env()
    return _extraction_config
