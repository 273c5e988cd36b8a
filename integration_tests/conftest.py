"""Pytest configuration for integration tests.

Integration tests open real WebRTC connections between local peers (aiortc)
and need working UDP on the loopback interface, but no external services.
"""

import os
import warnings

# Ignore warnings from the aioice/aiortc stack
warnings.filterwarnings("ignore", category=DeprecationWarning, module="aioice.*")
warnings.filterwarnings("ignore", category=DeprecationWarning, module="aiortc.*")

os.environ.update({"DEBUG": "false"})
