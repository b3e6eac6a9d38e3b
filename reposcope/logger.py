"""Loguru logging for reposcope.

Every module logs through ``get_logger(__name__)``, which binds the
``mod_name`` extra used by the default format. Nothing is emitted until an
application calls ``configure_logging()`` (or adds its own loguru sinks).
"""

import sys

import typing as t
from loguru import logger
from pydantic_settings import SettingsConfigDict

from .config import Settings

_configured_sinks: list[int] = []


class LoggerSettings(Settings):
    model_config = SettingsConfigDict(
        env_prefix="REPOSCOPE_LOG_",
        yaml_file="settings/logger.yaml",
    )

    level: str = "INFO"
    colorize: bool = True
    format: dict[str, str] = {
        "time": "<b><e>[</e> <w>{time:YYYY-MM-DD HH:mm:ss.SSS}</w> <e>]</e></b>",
        "level": " <level>{level:>8}</level>",
        "sep": " <b><w>in</w></b> ",
        "name": "<b>{extra[mod_name]:>20}</b>",
        "line": "<b><e>[</e><w>{line:^5}</w><e>]</e></b>",
        "message": "  <level>{message}</level>",
    }

    @property
    def format_string(self) -> str:
        return "".join(self.format.values())


def _patch(record: dict[str, t.Any]) -> None:
    record["extra"].setdefault("mod_name", record["name"])


logger.disable("reposcope")


def get_logger(name: str) -> t.Any:
    """Return the shared loguru logger bound to ``name``."""
    return logger.bind(mod_name=name.rsplit(".", 1)[-1])


def configure_logging(settings: LoggerSettings | None = None, sink: t.Any = None) -> int:
    """Install the reposcope sink and enable its records.

    Args:
        settings: Logger settings, defaults to ``LoggerSettings()``
        sink: Destination for records, defaults to ``sys.stderr``

    Returns:
        The loguru handler id of the installed sink
    """
    settings = settings or LoggerSettings()
    for handler_id in _configured_sinks:
        logger.remove(handler_id)
    _configured_sinks.clear()

    logger.configure(patcher=_patch)
    handler_id = logger.add(
        sink or sys.stderr,
        level=settings.level.upper(),
        format=settings.format_string,
        colorize=settings.colorize,
        filter="reposcope",
    )
    _configured_sinks.append(handler_id)
    logger.enable("reposcope")
    return handler_id
