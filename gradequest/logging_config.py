"""Logging setup"""
import logging

from gradequest.config import LOG_LEVEL


def configure_logging(level: str = LOG_LEVEL) -> None:
    """Configure root logging once at process start"""
    logging.basicConfig(
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        level=getattr(logging, level.upper(), logging.INFO)
    )
