"""Execution pipeline for the relay runtime.

This package contains the run-side components:

- **upstream**: Agent service protocol and run options
- **agent_cli**: Agent CLI adapter (subprocess, ``stream-json`` -> upstream events)
- **coordinator**: Run orchestration (start -> consume -> finalize)
"""
