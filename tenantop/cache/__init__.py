"""
The cache holds the informers which mirror the cluster state locally for the
controllers
"""

# Local
from .informer import Informer, ResourceEventHandler
