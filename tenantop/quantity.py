"""
Arithmetic over kubernetes resource quantities ("500m", "2Gi", "10") and the
resource lists (resource name -> quantity) used by quota objects
"""

# Standard
from decimal import ROUND_CEILING, Decimal
from typing import Dict, List, Union

# Third Party
from kubernetes.utils import parse_quantity

# First Party
import alog

# Local
from .exceptions import ConfigError

log = alog.use_channel("QNTY")

ResourceList = Dict[str, Union[str, int, float]]


def parse(quantity: Union[str, int, float, Decimal]) -> Decimal:
    """Parse a quantity into a Decimal number of base units

    Raises:
        ConfigError if the quantity is not a valid kubernetes quantity
    """
    if isinstance(quantity, Decimal):
        return quantity
    try:
        return parse_quantity(quantity)
    except (ValueError, TypeError) as err:
        raise ConfigError(f"Invalid resource quantity {quantity!r}: {err}") from err


def format(quantity: Decimal) -> str:  # pylint: disable=redefined-builtin
    """Render a Decimal as a canonical quantity string. Whole numbers are
    rendered plainly and fractions in milli-units, rounded up.
    """
    if quantity == quantity.to_integral_value():
        return str(int(quantity))
    millis = (quantity * 1000).to_integral_value(rounding=ROUND_CEILING)
    return f"{int(millis)}m"


def add_resource_lists(resource_lists: List[ResourceList]) -> Dict[str, Decimal]:
    """Sum resource lists key by key"""
    total: Dict[str, Decimal] = {}
    for resource_list in resource_lists:
        for resource, quantity in (resource_list or {}).items():
            total[resource] = total.get(resource, Decimal(0)) + parse(quantity)
    return total


def format_resource_list(resource_list: Dict[str, Decimal]) -> Dict[str, str]:
    return {resource: format(quantity) for resource, quantity in resource_list.items()}


def exceeds(requested: ResourceList, allocation: ResourceList) -> List[str]:
    """Find the resources where the request goes over the allocation. A
    resource missing from the allocation is not limited.

    Returns:
        exceeded:  List[str]
            Sorted names of the over-allocated resources
    """
    exceeded = []
    for resource, quantity in (requested or {}).items():
        if resource not in (allocation or {}):
            continue
        if parse(quantity) > parse(allocation[resource]):
            log.debug2(
                "%s request %s exceeds allocation %s",
                resource,
                quantity,
                allocation[resource],
            )
            exceeded.append(resource)
    return sorted(exceeded)
