"""
The TenantRequestController drives tenant onboarding requests. A request
waits for approval until its expiry and is deleted if it is not approved in
time. Approval creates the Tenant and its TenantResourceQuota.
"""

# Standard
from datetime import datetime
from typing import Optional
import copy

# First Party
import alog

# Local
from .. import config, constants
from ..controller import Controller
from ..exceptions import AlreadyExistsError, ConflictError, StoreError
from ..objects import KubeObject
from ..status import (
    EXPIRY_KEY,
    STATE_APPROVED,
    STATE_FAILURE,
    STATE_KEY,
    STATE_PENDING,
    get_status,
    set_state,
    status_writeback,
)
from ..utils import format_timestamp, parse_time_delta, parse_timestamp

log = alog.use_channel("TRQST")

## Messages ####################################################################

MESSAGE_APPROVED = "role approved"
MESSAGE_NOT_APPROVED = "not approved"
MESSAGE_TENANT_FAILED = "Tenant creation failed"
MESSAGE_QUOTA_FAILED = "Tenant resource quota creation failed"

REASON_APPROVED = "Approved"
REASON_CREATION_FAILED = "Not Created"

# Request fields carried over to the Tenant
TENANT_SPEC_FIELDS = (
    "fullName",
    "shortName",
    "url",
    "address",
    "contact",
    "resourceAllocation",
)

# Name of the claim seeded from the request's allocation
INITIAL_CLAIM = "initial"


class TenantRequestController(Controller):
    """Controller for registration.edgenet.io TenantRequests"""

    name = "tenant_request"
    kind = constants.TENANT_REQUEST_KIND
    api_version = constants.TENANT_REQUEST_API_VERSION

    def sync_handler(self, key: str):
        request = self.get_cached(key)
        if request is None:
            log.debug("TenantRequest %s no longer exists", key)
            return
        self.process_tenant_request(request)

    def process_tenant_request(self, request: KubeObject):
        """Apply the request lifecycle rules to one request"""
        now = self.clock.now()
        status = get_status(request)
        expiry = parse_timestamp(status.get(EXPIRY_KEY))
        approved = bool(request.spec.get("approved"))

        # Terminal states are removed when their window closes
        if expiry is not None and now > expiry:
            if status.get(STATE_KEY) == STATE_APPROVED:
                log.info("Approved TenantRequest %s retention elapsed", request.name)
                self._delete(request)
                return
            if not approved:
                log.info("TenantRequest %s expired at %s", request.name, expiry)
                self._delete(request)
                return

        with status_writeback(self.store, request):
            if status.get(STATE_KEY) == STATE_APPROVED:
                log.debug2("TenantRequest %s already approved", request.name)
            elif expiry is None:
                expiry = now + parse_time_delta(config.tenant_request.expiry)
                status[EXPIRY_KEY] = format_timestamp(expiry)
                set_state(request, STATE_PENDING)
                log.debug("Set expiry of %s to %s", request.name, status[EXPIRY_KEY])

            if status.get(STATE_KEY) != STATE_APPROVED:
                if approved:
                    expiry = self._approve(request, now)
                else:
                    set_state(request, STATE_PENDING, MESSAGE_NOT_APPROVED)

        self._requeue_at(request, expiry, now)

    ## Implementation Details ##################################################

    def _approve(self, request: KubeObject, now: datetime) -> Optional[datetime]:
        """Create the Tenant and its quota and mark the request approved

        Returns:
            expiry:  Optional[datetime]
                The retention expiry of the approved request
        """
        try:
            self._create_tenant(request)
        except StoreError:
            self._fail(request, MESSAGE_TENANT_FAILED)
            raise
        try:
            self._create_tenant_resource_quota(request)
        except StoreError:
            self._fail(request, MESSAGE_QUOTA_FAILED)
            raise

        expiry = now + parse_time_delta(config.tenant_request.approved_retention)
        status = get_status(request)
        status[EXPIRY_KEY] = format_timestamp(expiry)
        set_state(request, STATE_APPROVED, MESSAGE_APPROVED)
        self.recorder.normal(request, REASON_APPROVED, MESSAGE_APPROVED)
        log.info("TenantRequest %s approved", request.name)
        return expiry

    def _fail(self, request: KubeObject, message: str):
        log.warning("TenantRequest %s: %s", request.name, message)
        set_state(request, STATE_FAILURE, message)
        self.recorder.warning(request, REASON_CREATION_FAILED, message)

    def _create_tenant(self, request: KubeObject):
        spec = {
            field: copy.deepcopy(request.spec[field])
            for field in TENANT_SPEC_FIELDS
            if field in request.spec
        }
        spec["enabled"] = True
        try:
            self.store.create_object(
                {
                    "apiVersion": constants.TENANT_API_VERSION,
                    "kind": constants.TENANT_KIND,
                    "metadata": {"name": request.name},
                    "spec": spec,
                }
            )
            log.debug("Created Tenant %s", request.name)
        except AlreadyExistsError:
            log.debug2("Tenant %s already exists", request.name)

    def _create_tenant_resource_quota(self, request: KubeObject):
        """Create the quota with the initial claim. An existing quota only gets
        the initial claim added if it has none.
        """
        initial_claim = {
            "resourceList": copy.deepcopy(request.spec.get("resourceAllocation") or {})
        }
        try:
            self.store.create_object(
                {
                    "apiVersion": constants.TENANT_RESOURCE_QUOTA_API_VERSION,
                    "kind": constants.TENANT_RESOURCE_QUOTA_KIND,
                    "metadata": {"name": request.name},
                    "spec": {"claim": {INITIAL_CLAIM: initial_claim}},
                }
            )
            log.debug("Created TenantResourceQuota %s", request.name)
            return
        except AlreadyExistsError:
            log.debug2("TenantResourceQuota %s already exists", request.name)

        for attempt in range(config.store_retries + 1):
            current = self.store.get_object(
                constants.TENANT_RESOURCE_QUOTA_KIND,
                request.name,
                api_version=constants.TENANT_RESOURCE_QUOTA_API_VERSION,
            )
            if current is None:
                log.debug2("TenantResourceQuota %s vanished", request.name)
                return
            claims = current.setdefault("spec", {}).get("claim") or {}
            if INITIAL_CLAIM in claims:
                return
            claims[INITIAL_CLAIM] = initial_claim
            current["spec"]["claim"] = claims
            try:
                self.store.update_object(current)
                log.debug("Added initial claim to %s", request.name)
                return
            except ConflictError:
                if attempt == config.store_retries:
                    raise
                self.clock.sleep(float(config.retry_backoff_base_seconds) * 2**attempt)

    def _delete(self, request: KubeObject):
        self.store.delete_object(
            self.kind, request.name, request.namespace, self.api_version
        )

    def _requeue_at(
        self, request: KubeObject, expiry: Optional[datetime], now: datetime
    ):
        """Revisit the request when its expiry passes"""
        if expiry is not None:
            delay = (expiry - now).total_seconds()
            log.debug3("Revisiting %s in %ss", request.name, delay)
            self.enqueue_after(request, delay + 1)
