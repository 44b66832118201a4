from __future__ import annotations

from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field


class ResolvedIdentity(BaseModel):
    """A declared resource matched to an existing live resource."""
    model_config = ConfigDict(populate_by_name=True, frozen=True)

    resource_type: str = Field(alias="ResourceType")
    logical_name: str = Field(alias="LogicalResourceId")
    identifier_map: Dict[str, str] = Field(alias="ResourceIdentifier")

    def to_api(self) -> Dict[str, Any]:
        # element of CreateChangeSet ResourcesToImport
        return self.model_dump(by_alias=True)


class StackInstance(BaseModel):
    account: str
    region: str
    stack_id: Optional[str] = None
    status: Optional[str] = None
    detailed_status: Optional[str] = None
    drift_status: Optional[str] = None
    status_reason: Optional[str] = None

    @classmethod
    def from_summary(cls, summary: Dict[str, Any]) -> "StackInstance":
        return cls(account=summary["Account"],
                   region=summary["Region"],
                   stack_id=summary.get("StackId"),
                   status=summary.get("Status"),
                   detailed_status=summary.get("StackInstanceStatus", {}).get("DetailedStatus"),
                   drift_status=summary.get("DriftStatus"),
                   status_reason=summary.get("StatusReason"))


class PatchOperation(BaseModel):
    op: Literal["add", "remove", "replace"]
    path: str
    value: Any = None

    def to_patch(self) -> Dict[str, Any]:
        if self.op == "remove":
            return {"op": self.op, "path": self.path}
        return {"op": self.op, "path": self.path, "value": self.value}


class PropertyDifference(BaseModel):
    property_path: str
    expected_value: Optional[str] = None
    actual_value: Optional[str] = None
    difference_type: str

    @classmethod
    def from_api(cls, difference: Dict[str, Any]) -> "PropertyDifference":
        return cls(property_path=difference["PropertyPath"],
                   expected_value=difference.get("ExpectedValue"),
                   actual_value=difference.get("ActualValue"),
                   difference_type=difference["DifferenceType"])


class ResourceDrift(BaseModel):
    logical_resource_id: str
    physical_resource_id: Optional[str] = None
    resource_type: str
    drift_status: str
    property_differences: List[PropertyDifference] = Field(default_factory=list)

    @classmethod
    def from_api(cls, drift: Dict[str, Any]) -> "ResourceDrift":
        return cls(logical_resource_id=drift["LogicalResourceId"],
                   physical_resource_id=drift.get("PhysicalResourceId"),
                   resource_type=drift["ResourceType"],
                   drift_status=drift["StackResourceDriftStatus"],
                   property_differences=[PropertyDifference.from_api(d) for d in drift.get("PropertyDifferences", [])])


class ScopedCredentials(BaseModel):
    model_config = ConfigDict(frozen=True)

    access_key: str
    secret_key: str
    session_token: str
    expires_at: datetime

    @classmethod
    def from_sts(cls, credentials: Dict[str, Any]) -> "ScopedCredentials":
        return cls(access_key=credentials["AccessKeyId"],
                   secret_key=credentials["SecretAccessKey"],
                   session_token=credentials["SessionToken"],
                   expires_at=credentials["Expiration"])

    def expires_within(self, seconds: int, now: datetime = None) -> bool:
        now = now or datetime.now(timezone.utc)
        expires_at = self.expires_at
        if expires_at.tzinfo is None:
            expires_at = expires_at.replace(tzinfo=timezone.utc)
        return expires_at - now <= timedelta(seconds=seconds)


class RepairState(str, Enum):
    INIT = "INIT"
    CREDS_READY = "CREDS_READY"
    PLAN_BUILT = "PLAN_BUILT"
    TEMPLATE_UPLOADED = "TEMPLATE_UPLOADED"
    CHANGESET_CREATED = "CHANGESET_CREATED"
    CHANGESET_EXECUTED = "CHANGESET_EXECUTED"
    IMPORT_COMPLETE = "IMPORT_COMPLETE"
    STACK_UPDATED = "STACK_UPDATED"
    DETACHED = "DETACHED"
    REATTACHED = "REATTACHED"
    FAILED = "FAILED"


class InstanceRepairResult(BaseModel):
    account: str
    region: str
    stack_name: Optional[str] = None
    state: RepairState = RepairState.INIT
    history: List[RepairState] = Field(default_factory=list)
    error: Optional[str] = None

    def is_repaired(self) -> bool:
        return self.state == RepairState.REATTACHED


class PatchResult(BaseModel):
    identifier: Optional[str] = None
    type_name: str
    patch: List[PatchOperation] = Field(default_factory=list)
    status: str
    message: Optional[str] = None

    def succeeded(self) -> bool:
        return self.status == "SUCCESS"
