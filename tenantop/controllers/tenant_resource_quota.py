"""
The TenantResourceQuotaController sums the active claims of a tenant's quota,
checks the sum against the tenant's allocation and applies it as the hard
limit of the ResourceQuota in the tenant's core namespace
"""

# Standard
from datetime import datetime
from typing import Dict, List, Optional

# First Party
import alog

# Local
from .. import config, constants, quantity
from ..apply import ensure_object
from ..controller import Controller
from ..exceptions import ConfigError, PreconditionError
from ..objects import KubeObject, set_owner_reference
from ..status import (
    AGGREGATE_KEY,
    STATE_APPLIED,
    STATE_FAILURE,
    STATE_PENDING,
    get_status,
    set_state,
    status_writeback,
)
from ..utils import parse_timestamp

log = alog.use_channel("TRQ")

REASON_EXCEEDED = "Exceeded"
REASON_INVALID = "Invalid"
MESSAGE_APPLIED = "Resource quota applied"
MESSAGE_NO_TENANT = "Waiting for tenant"
MESSAGE_NO_NAMESPACE = "Waiting for core namespace"


class TenantResourceQuotaController(Controller):
    """Controller for core.edgenet.io TenantResourceQuotas"""

    name = "tenant_resource_quota"
    kind = constants.TENANT_RESOURCE_QUOTA_KIND
    api_version = constants.TENANT_RESOURCE_QUOTA_API_VERSION

    def sync_handler(self, key: str):
        quota = self.get_cached(key)
        if quota is None:
            log.debug("TenantResourceQuota %s no longer exists", key)
            return
        self.process_tenant_resource_quota(quota)

    def process_tenant_resource_quota(self, quota: KubeObject):
        now = self.clock.now()
        with status_writeback(self.store, quota):
            claims = quota.spec.get("claim") or {}
            try:
                aggregate = quantity.add_resource_lists(
                    self.active_claims(claims, now)
                )
            except ConfigError as err:
                log.warning("Invalid claim in %s: %s", quota.name, err)
                set_state(quota, STATE_FAILURE, str(err))
                self.recorder.warning(quota, REASON_INVALID, str(err))
                return
            formatted = quantity.format_resource_list(aggregate)
            get_status(quota)[AGGREGATE_KEY] = formatted

            tenant = self.store.get_object(
                constants.TENANT_KIND,
                quota.name,
                api_version=constants.TENANT_API_VERSION,
            )
            if tenant is None:
                set_state(quota, STATE_PENDING, MESSAGE_NO_TENANT)
                raise PreconditionError(f"Tenant {quota.name} not found")

            allocation = (tenant.get("spec") or {}).get("resourceAllocation") or {}
            exceeded = quantity.exceeds(aggregate, allocation)
            if exceeded:
                message = (
                    f"Claims exceed the tenant allocation for {', '.join(exceeded)}"
                )
                log.warning("TenantResourceQuota %s: %s", quota.name, message)
                set_state(quota, STATE_FAILURE, message)
                self.recorder.warning(quota, REASON_EXCEEDED, message)
                return

            namespace = self.store.get_object("Namespace", quota.name, api_version="v1")
            if namespace is None:
                set_state(quota, STATE_PENDING, MESSAGE_NO_NAMESPACE)
                raise PreconditionError(f"Core namespace {quota.name} not found")

            self._ensure_resource_quota(quota, formatted)
            set_state(quota, STATE_APPLIED, MESSAGE_APPLIED)

        next_expiry = self.next_claim_expiry(claims, now)
        if next_expiry is not None:
            self.enqueue_after(quota, (next_expiry - now).total_seconds() + 1)

    ## Claims ##################################################################

    @staticmethod
    def active_claims(claims: Dict[str, dict], now: datetime) -> List[dict]:
        """The resource lists of the claims that have not expired, in claim
        name order
        """
        active = []
        for name in sorted(claims):
            claim = claims[name] or {}
            expiry = parse_timestamp(claim.get("expiry"))
            if expiry is not None and expiry <= now:
                log.debug2("Skipping expired claim %s", name)
                continue
            active.append(claim.get("resourceList") or {})
        return active

    @staticmethod
    def next_claim_expiry(claims: Dict[str, dict], now: datetime) -> Optional[datetime]:
        expiries = [
            parse_timestamp((claim or {}).get("expiry")) for claim in claims.values()
        ]
        upcoming = [
            expiry for expiry in expiries if expiry is not None and expiry > now
        ]
        return min(upcoming) if upcoming else None

    ## Implementation Details ##################################################

    def _ensure_resource_quota(self, quota: KubeObject, hard: Dict[str, str]) -> dict:
        manifest = {
            "apiVersion": "v1",
            "kind": "ResourceQuota",
            "metadata": {
                "name": config.tenant_resource_quota.resource_quota_name,
                "namespace": quota.name,
                "labels": {constants.LABEL_GENERATED: "true"},
            },
            "spec": {"hard": hard},
        }
        set_owner_reference(manifest, quota)
        return ensure_object(
            self.store, manifest, compare_fields=["spec"], clock=self.clock
        )
