"""
Custom logging formats that contain more detailed tenantop logs
"""

# First Party
from alog import AlogJsonFormatter


class TenantOpJsonFormatter(AlogJsonFormatter):
    """Custom Log Format that extends AlogJsonFormatter to add the identity of
    the object being reconciled and thread information to the json
    """

    _FIELDS_TO_PRINT = AlogJsonFormatter._FIELDS_TO_PRINT + [
        "thread",
        "threadName",
        "kind",
        "apiVersion",
        "resourceVersion",
        "resourceName",
        "key",
    ]

    def format(self, record):
        if resource := getattr(record, "resource", None):
            definition = getattr(resource, "definition", resource)
            record.kind = definition.get("kind")
            record.apiVersion = definition.get("apiVersion")

            metadata = definition.get("metadata") or {}
            record.resourceVersion = metadata.get("resourceVersion")
            record.resourceName = metadata.get("name")

        return super().format(record)
