from __future__ import annotations
import os

WORKFLOW = os.environ.get("GATECI_WORKFLOW", "gateci_workflow.py")

# read and validated by the CLI's click options
PROVISIONER_ENV = "GATECI_PROVISIONER"
WORKERS_ENV = "GATECI_WORKERS"
COMMAND_TIMEOUT_ENV = "GATECI_COMMAND_TIMEOUT"
