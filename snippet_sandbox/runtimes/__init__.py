"""Execution backends: the Python interpreter and the script process sandbox."""
