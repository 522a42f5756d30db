"""Environment configuration for the legal document pipeline.

Every setting is an environment variable. Keys are case-insensitive and an
empty value counts as unset. A getter called without a default treats the
variable as required.
"""

import logging
import os
from pathlib import Path
from typing import Any

_TRUE_VALUES = ("true", "1", "yes", "on")


class HelperConfig:
    """Typed access to the pipeline's environment settings."""

    def __init__(self, logger: logging.Logger) -> None:
        self._logger = logger

    ##########################################
    ################ HELPERS #################
    ##########################################

    @staticmethod
    def _read(key: str) -> str | None:
        raw = os.getenv(key.upper())
        if raw is None or not raw.strip():
            return None
        return raw.strip()

    @staticmethod
    def _missing(key: str) -> ValueError:
        return ValueError(f"Environment variable '{key.upper()}' is not set.")

    @staticmethod
    def _check_minimum(key: str, value: int | float, minimum: int | float | None) -> None:
        if minimum is not None and value < minimum:
            raise ValueError(f"Environment variable '{key.upper()}' must be at least {minimum}, got {value}.")

    ##########################################
    ################ GETTER ##################
    ##########################################

    def get_string_val(self, key: str, default: str | None = None) -> str:
        """Read a string environment variable.

        Args:
            key (str): Environment variable name (case-insensitive).
            default (str | None): Fallback value if the variable is not set.

        Returns:
            str: The stripped value, or the default.

        Raises:
            ValueError: If the variable is not set and no default is provided.
        """
        raw = self._read(key)
        if raw is None:
            if default is None:
                raise self._missing(key)
            return default
        return raw

    def get_number_val(self, key: str, default: float | int | None = None) -> float | int:
        """Read a numeric environment variable. "12" gives an int, "1.5" a float.

        Raises:
            ValueError: If the variable is not set and no default is provided,
                or if the value is not a number.
        """
        raw = self._read(key)
        if raw is None:
            if default is None:
                raise self._missing(key)
            return default
        try:
            return int(raw) if "." not in raw else float(raw)
        except ValueError:
            raise ValueError(f"Environment variable '{key.upper()}' is not a valid number: '{raw}'.")

    def get_int_val(self, key: str, default: int | None = None, minimum: int | None = None) -> int:
        """Read an integer setting such as a batch size or a token limit.

        Args:
            key (str): Environment variable name (case-insensitive).
            default (int | None): Fallback value if the variable is not set.
            minimum (int | None): Smallest accepted value.

        Returns:
            int: The resolved value. A float value is truncated.

        Raises:
            ValueError: If the variable is missing without default, not a number,
                or below ``minimum``.
        """
        value = int(self.get_number_val(key, default=default))
        self._check_minimum(key, value, minimum)
        return value

    def get_float_val(self, key: str, default: float | None = None, minimum: float | None = None) -> float:
        """Read a float setting such as a delay in seconds or a memory threshold in MB.

        Raises:
            ValueError: If the variable is missing without default, not a number,
                or below ``minimum``.
        """
        value = float(self.get_number_val(key, default=default))
        self._check_minimum(key, value, minimum)
        return value

    def get_bool_val(self, key: str, default: bool | None = None) -> bool:
        """Read a boolean environment variable ("true", "1", "yes" and "on" are true).

        Raises:
            ValueError: If the variable is not set and no default is provided.
        """
        raw = self._read(key)
        if raw is None:
            if default is None:
                raise self._missing(key)
            return default
        return raw.lower() in _TRUE_VALUES

    def get_path_val(self, key: str, default: str | Path | None = None) -> Path:
        """Read a filesystem path. Relative paths are resolved against ROOT_DIR (or the working directory).

        Raises:
            ValueError: If the variable is not set and no default is provided.
        """
        raw = self._read(key)
        if raw is None and default is None:
            raise self._missing(key)
        path = Path(raw if raw is not None else default).expanduser()
        if not path.is_absolute():
            path = Path(self._read("ROOT_DIR") or os.getcwd()) / path
        return path

    def get_list_val(self, key: str, default: list[Any] | None = None, separator: str = ",", element_type: type = str) -> list:
        """Read a list environment variable in the form "[elem1,elem2,...]".

        Args:
            key (str): Environment variable name (case-insensitive).
            default (list | None): Fallback value if the variable is not set.
            separator (str): The delimiter between elements.
            element_type (type): The type to which each element should be cast.

        Returns:
            list: The resolved elements, blanks dropped.

        Raises:
            ValueError: If the variable is not set and no default is provided,
                if it is not wrapped in brackets, or if an element cannot be cast.
        """
        raw = self._read(key)
        if raw is None:
            if default is None:
                raise self._missing(key)
            return default
        if not raw.startswith("[") or not raw.endswith("]"):
            raise ValueError(f"Environment variable '{key.upper()}' must be in the format '[elem1{separator}elem2{separator}...]'. Got: '{raw}'")
        elements = [v.strip() for v in raw[1:-1].split(separator) if v.strip()]
        try:
            return [element_type(elem) for elem in elements]
        except ValueError as e:
            raise ValueError(f"Environment variable '{key.upper()}' contains invalid elements: {e}. Type set to {element_type.__name__}. Got: '{raw}'")

    def get_logger(self) -> logging.Logger:
        return self._logger
