"""
Catalog of field writes that can be queued offline and replayed later.

Each entry says how to turn a stored payload back into a request against
the central construction-PM server.
"""
import string
from urllib.parse import quote
from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Tuple

from fieldsync.offline.errors import PayloadValidationError

PHOTO_FLAG_TYPES = ("REPLACEMENT_NEEDED", "ADDITIONAL_ANGLES", "ADDITIONAL_PHOTOS", "CLARIFICATION_NEEDED")
DOCUMENT_STATUSES = ("PENDING", "APPROVED", "REJECTED", "EXPIRED")
MATERIAL_STATUSES = ("ORDERED", "DELIVERED", "INSTALLED", "RETURNED")
INSPECTION_RESULTS = ("PASS", "FAIL", "CONDITIONAL")
CHANGE_ORDER_STATUSES = ("APPROVED", "REJECTED")


@dataclass(frozen=True)
class FieldAction:
    name: str
    method: str
    path: str                                  # str.format template over payload keys
    body_keys: Optional[Tuple[str, ...]] = ()  # None sends the whole payload
    required: Tuple[str, ...] = ()
    choices: Dict[str, Tuple[str, ...]] = field(default_factory=dict)

    @property
    def path_keys(self) -> Tuple[str, ...]:
        return tuple(name for _, name, _, _ in string.Formatter().parse(self.path) if name)

    def validate(self, payload: Dict[str, Any]) -> None:
        """
        Raises:
            PayloadValidationError: On missing required keys or a value outside its choices
        """
        if not isinstance(payload, dict):
            raise PayloadValidationError(f"{self.name}: payload must be an object")

        missing = [key for key in self.path_keys + self.required
                   if payload.get(key) in (None, "")]
        if missing:
            raise PayloadValidationError(f"{self.name}: missing required field(s): {', '.join(missing)}")

        for key, allowed in self.choices.items():
            value = payload.get(key)
            if value is not None and value not in allowed:
                raise PayloadValidationError(
                    f"{self.name}: invalid {key} '{value}', expected one of {', '.join(allowed)}"
                )

    def build_path(self, payload: Dict[str, Any]) -> str:
        return self.path.format(**{key: quote(str(payload[key]), safe="") for key in self.path_keys})

    def build_body(self, payload: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        if self.body_keys is None:
            return dict(payload)
        if not self.body_keys:
            return None
        # Keys left out of the payload are left out of the request, so the server keeps its value
        return {key: payload[key] for key in self.body_keys if key in payload}


FIELD_ACTIONS = (
    # Phases
    FieldAction("update_phase_status", "PATCH", "/api/phases/{phase_id}/status",
                ("status",), required=("status",)),
    FieldAction("update_phase_dates", "PATCH", "/api/phases/{phase_id}/dates",
                ("est_start", "est_end", "worst_start", "worst_end"), required=("est_start", "est_end")),
    FieldAction("assign_staff", "POST", "/api/phases/{phase_id}/staff",
                ("staff_id", "is_owner"), required=("staff_id",)),
    FieldAction("unassign_staff", "DELETE", "/api/staff-assignments/{assignment_id}"),
    FieldAction("add_dependency", "POST", "/api/phases/{phase_id}/dependencies",
                ("depends_on_id", "lag_days"), required=("depends_on_id",)),
    FieldAction("remove_dependency", "DELETE", "/api/dependencies/{dependency_id}"),

    # Checklists
    FieldAction("toggle_checklist_item", "POST", "/api/checklist-items/{item_id}/toggle"),
    FieldAction("add_checklist_item", "POST", "/api/checklists/{checklist_id}/items",
                ("text",), required=("text",)),
    FieldAction("delete_checklist_item", "DELETE", "/api/checklist-items/{item_id}"),

    # Comments
    FieldAction("add_comment", "POST", "/api/phases/{phase_id}/comments",
                ("content",), required=("content",)),
    FieldAction("delete_comment", "DELETE", "/api/comments/{comment_id}"),

    # Budget
    FieldAction("update_project_budget", "PATCH", "/api/projects/{project_id}/budget", ("budget",)),
    FieldAction("update_phase_costs", "PATCH", "/api/phases/{phase_id}/costs",
                ("estimated_cost", "actual_cost")),

    # Change orders
    FieldAction("create_change_order", "POST", "/api/phases/{phase_id}/change-orders",
                ("number", "title", "description", "amount", "reason"), required=("number", "title")),
    FieldAction("update_change_order_status", "PATCH", "/api/change-orders/{change_order_id}/status",
                ("status",), required=("status",), choices={"status": CHANGE_ORDER_STATUSES}),
    FieldAction("delete_change_order", "DELETE", "/api/change-orders/{change_order_id}"),

    # Daily logs
    FieldAction("create_daily_log", "POST", "/api/projects/{project_id}/daily-logs",
                ("date", "weather", "temp_high", "temp_low", "crew_count", "equipment",
                 "work_summary", "issues", "notes"),
                required=("date", "work_summary")),
    FieldAction("delete_daily_log", "DELETE", "/api/daily-logs/{log_id}"),

    # Photos
    FieldAction("update_photo_caption", "PATCH", "/api/photos/{photo_id}", ("caption",)),
    FieldAction("flag_photo", "POST", "/api/photos/{photo_id}/flag",
                ("flag_type", "note"), required=("flag_type",), choices={"flag_type": PHOTO_FLAG_TYPES}),
    FieldAction("clear_photo_flag", "DELETE", "/api/photos/{photo_id}/flag"),
    FieldAction("update_photo_gps", "PATCH", "/api/photos/{photo_id}/gps",
                ("latitude", "longitude"), required=("latitude", "longitude")),

    # Documents
    FieldAction("update_document_status", "PATCH", "/api/documents/{document_id}/status",
                ("status",), required=("status",), choices={"status": DOCUMENT_STATUSES}),

    # Inspections
    FieldAction("create_inspection", "POST", "/api/phases/{phase_id}/inspections",
                ("title", "inspector_name", "scheduled_at", "notify_on_result"),
                required=("title", "scheduled_at")),
    FieldAction("record_inspection_result", "POST", "/api/inspections/{inspection_id}/result",
                ("result", "notes"), required=("result",), choices={"result": INSPECTION_RESULTS}),

    # Materials
    FieldAction("create_material", "POST", "/api/phases/{phase_id}/materials",
                ("name", "quantity", "unit", "cost", "supplier", "notes"),
                required=("name", "quantity", "unit")),
    FieldAction("update_material_status", "PATCH", "/api/materials/{material_id}/status",
                ("status",), required=("status",), choices={"status": MATERIAL_STATUSES}),

    # Subcontractor bids
    FieldAction("submit_bid", "POST", "/api/subcontractor-bids", None),

    # Notifications
    FieldAction("mark_notification_read", "POST", "/api/notifications/{notification_id}/read"),
    FieldAction("mark_all_notifications_read", "POST", "/api/notifications/read-all"),
)

FIELD_ACTIONS_BY_NAME = {action.name: action for action in FIELD_ACTIONS}
