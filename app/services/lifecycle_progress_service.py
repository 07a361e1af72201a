"""
Model Lifecycle — Progress Aggregator.

Read-only completion statistics for one tracked entity, computed in a
single grouped query. A value counts as filled only when it has text,
JSON, or at least one attached file; an empty anchor row does not.
"""

import logging

from sqlalchemy import and_, case, func, or_, select

from app.models.lifecycle import (
    lifecycle_item_files,
    lifecycle_items,
    lifecycle_phases,
    lifecycle_values,
)
from app.tenant import tenant_connection

logger = logging.getLogger(__name__)


def completion_percentage(filled: int, total: int) -> int:
    """filled / total * 100 rounded half up, or 0 for an empty denominator."""
    if not total:
        return 0
    return (filled * 200 + total) // (2 * total)


def _progress_statement(tracked_entity_id: int):
    p, i, v, f = lifecycle_phases, lifecycle_items, lifecycle_values, lifecycle_item_files

    has_file = select(f.c.id).where(f.c.value_id == v.c.id).correlate(v).exists()
    filled = or_(v.c.value_text.isnot(None), v.c.value_json.isnot(None), has_file)
    required = i.c.is_required.is_(True)

    joined = p.outerjoin(
        i, and_(i.c.phase_id == p.c.id, i.c.is_active.is_(True))
    ).outerjoin(
        v, and_(v.c.item_id == i.c.id, v.c.tracked_entity_id == tracked_entity_id, filled)
    )
    return (
        select(
            p.c.id.label("phase_id"),
            p.c.name.label("phase_name"),
            func.count(i.c.id).label("total_items"),
            func.count(v.c.id).label("filled_items"),
            func.count(case((required, 1))).label("required_items"),
            func.count(case((and_(required, v.c.id.isnot(None)), 1))).label("filled_required_items"),
        )
        .select_from(joined)
        .where(p.c.is_active.is_(True))
        .group_by(p.c.id, p.c.name, p.c.display_order)
        .order_by(p.c.display_order.asc(), p.c.id.asc())
    )


def get_progress(tenant_id: str, tracked_entity_id: int) -> dict:
    """Per-phase and overall completion for one tracked entity.

    Returns:
        {
            "phases": [{phase_id, phase_name, total_items, filled_items,
                        required_items, filled_required_items,
                        completion_percentage}, ...],
            "total_items": int, "filled_items": int,
            "total_required": int, "filled_required": int,
            "completion_percentage": int,
        }
    """
    with tenant_connection(tenant_id) as conn:
        rows = conn.execute(_progress_statement(tracked_entity_id)).all()

    phases = []
    totals = {"total_items": 0, "filled_items": 0, "total_required": 0, "filled_required": 0}
    for row in rows:
        phase = {
            "phase_id": row.phase_id,
            "phase_name": row.phase_name,
            "total_items": int(row.total_items),
            "filled_items": int(row.filled_items),
            "required_items": int(row.required_items),
            "filled_required_items": int(row.filled_required_items),
        }
        phase["completion_percentage"] = completion_percentage(
            phase["filled_items"], phase["total_items"]
        )
        phases.append(phase)
        totals["total_items"] += phase["total_items"]
        totals["filled_items"] += phase["filled_items"]
        totals["total_required"] += phase["required_items"]
        totals["filled_required"] += phase["filled_required_items"]

    logger.debug(
        "Progress computed entity=%s tenant=%s filled=%s/%s",
        tracked_entity_id, tenant_id, totals["filled_items"], totals["total_items"],
    )
    return {
        "phases": phases,
        **totals,
        "completion_percentage": completion_percentage(totals["filled_items"], totals["total_items"]),
    }
