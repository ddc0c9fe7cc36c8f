import logging
from datetime import datetime
import os

class TradingLogger:
    def __init__(self, name: str = "launch_sniper", log_dir: str = "data/logs", console_output: bool = False,
                 level: str = "DEBUG"):
        self.log_dir = log_dir
        os.makedirs(log_dir, exist_ok=True)

        # Create logger
        self.logger = logging.getLogger(name)
        self.logger.setLevel(getattr(logging, level.upper(), logging.DEBUG))
        self.logger.propagate = False

        # Create handlers with console_output flag
        self._setup_handlers(console_output)

    def _setup_handlers(self, console_output: bool):
        # Loggers are process-wide, drop handlers left by a previous instance
        for handler in list(self.logger.handlers):
            self.logger.removeHandler(handler)
            handler.close()

        # Console handler (only if console_output is True)
        if console_output:
            console_handler = logging.StreamHandler()
            console_handler.setLevel(logging.INFO)
            console_format = logging.Formatter('%(asctime)s - %(levelname)s - %(message)s')
            console_handler.setFormatter(console_format)
            self.logger.addHandler(console_handler)

        # File handler (always enabled)
        timestamp = datetime.now().strftime('%Y%m%d_%H%M%S')
        file_handler = logging.FileHandler(
            os.path.join(self.log_dir, f'sniper_{timestamp}.log')
        )
        file_handler.setLevel(logging.DEBUG)
        file_format = logging.Formatter(
            '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
        )
        file_handler.setFormatter(file_format)
        self.logger.addHandler(file_handler)

    @staticmethod
    def _format(message: str, fields: dict) -> str:
        """Append key=value pairs so every entry can be grepped by field"""
        if not fields:
            return message
        rendered = " ".join(f"{key}={value}" for key, value in fields.items())
        return f"{message} | {rendered}"

    def critical(self, message: str, **fields) -> None:
        """Log critical message"""
        self.logger.critical(self._format(message, fields))

    def debug(self, message: str, **fields) -> None:
        """Log debug message"""
        self.logger.debug(self._format(message, fields))

    def info(self, message: str, **fields) -> None:
        """Log info message"""
        self.logger.info(self._format(message, fields))

    def warning(self, message: str, **fields) -> None:
        """Log warning message"""
        self.logger.warning(self._format(message, fields))

    def error(self, message: str, **fields) -> None:
        """Log error message"""
        self.logger.error(self._format(message, fields))
