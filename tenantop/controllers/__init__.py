"""
The operators: one Controller per managed resource kind
"""

# Local
from .tenant import TenantController
from .tenant_request import TenantRequestController
from .tenant_resource_quota import TenantResourceQuotaController

# Controllers by the name used in config and on the command line
CONTROLLERS = {
    controller.name: controller
    for controller in [
        TenantRequestController,
        TenantController,
        TenantResourceQuotaController,
    ]
}
