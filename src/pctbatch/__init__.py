"""
pctbatch - Batch administration for Proxmox LXC containers
"""

__version__ = "0.1.0"

from .core import BatchRunner, PctBatch, PctBatchError

__all__ = ["BatchRunner", "PctBatch", "PctBatchError"]
