"""
base.py
Description: Base class for all gallery handlers with common functionality
This module provides a base class for handlers, including logging, error history
and locked execution. It is designed to be extended by the database, embedded
metadata and import handlers.
Author: Eric Hiss (GitHub: EricRollei)
Contact: [eric@historic.camera, eric@rollei.us]
Version: 1.0.0
Date: [March 2025]
License: Dual License (Non-Commercial and Commercial Use)
Copyright (c) 2025 Eric Hiss. All rights reserved.

Dual License:
1. Non-Commercial Use: This software is licensed under the terms of the
   Creative Commons Attribution-NonCommercial 4.0 International License.
   To view a copy of this license, visit http://creativecommons.org/licenses/by-nc/4.0/

2. Commercial Use: For commercial use, a separate license is required.
   Please contact Eric Hiss at [eric@historic.camera, eric@rollei.us] for licensing options.

THE SOFTWARE IS PROVIDED "AS IS", WITHOUT WARRANTY OF ANY KIND, EXPRESS OR IMPLIED,
INCLUDING BUT NOT LIMITED TO THE WARRANTIES OF MERCHANTABILITY, FITNESS FOR A
PARTICULAR PURPOSE AND NONINFRINGEMENT.

Dependencies:


"""
# aura_gallery/handlers/base.py
import threading
import datetime
from typing import Any, Dict, List


class BaseHandler:
    """Base class for all handlers with common functionality"""

    def __init__(self, debug: bool = False):
        """
        Initialize the base handler

        Args:
            debug: Whether to enable debug logging
        """
        self.debug = debug
        self._lock = threading.RLock()
        self.error_history: List[Dict[str, Any]] = []
        self.max_error_history = 100

    def log(self, message: str, level: str = "INFO", error: Exception = None) -> None:
        """
        Log a message with appropriate level

        Args:
            message: The message to log
            level: Log level (INFO, DEBUG, WARNING, ERROR)
            error: Optional exception to include in log
        """
        if level == "DEBUG" and not self.debug:
            return

        timestamp = self.get_timestamp()

        error_text = f" - {str(error)}" if error else ""
        log_message = f"[{timestamp}] {self.__class__.__name__} [{level}] {message}{error_text}"

        print(log_message)

        # Track errors for diagnostics
        if level in ["ERROR", "WARNING"]:
            self.error_history.append({
                'timestamp': timestamp,
                'level': level,
                'message': message,
                'error': str(error) if error else None
            })

            # Maintain history size
            if len(self.error_history) > self.max_error_history:
                self.error_history.pop(0)

    def get_timestamp(self) -> str:
        """Get current timestamp in ISO 8601 format"""
        return datetime.datetime.now().isoformat()

    def _locked(self, operation_name: str, callback, *args, **kwargs) -> Any:
        """
        Execute operation while holding the handler lock

        Errors are logged and re-raised so the caller decides whether the
        failure is per-item or fatal.

        Args:
            operation_name: Name of the operation for logging
            callback: Function to execute
            *args, **kwargs: Arguments to pass to the callback

        Returns:
            Any: Result from the callback
        """
        with self._lock:
            self.log(f"Starting operation: {operation_name}", level="DEBUG")
            try:
                result = callback(*args, **kwargs)
            except Exception as e:
                self.log(f"Error in {operation_name}", level="ERROR", error=e)
                raise

            self.log(f"Completed operation: {operation_name}", level="DEBUG")
            return result

    def cleanup(self) -> None:
        """Clean up any resources used by the handler"""
        # Base implementation does nothing
        pass

    def __enter__(self):
        """Context manager entry"""
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        """Context manager exit - ensure cleanup"""
        self.cleanup()
