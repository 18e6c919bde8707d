# Self-Improving Coding Agent
# Copyright (c) 2025 Maxime Robeyns
#
# This source code is licensed under the MIT license found in the
# LICENSE file in the root directory of this source tree.
"""
Persistent storage of finished and running jobs for later inspection.
"""

from .models import JobMetadata, StoredBlock, StoredJob
from .job_store import JobStore

__all__ = [
    "JobMetadata",
    "StoredBlock",
    "StoredJob",
    "JobStore",
]
