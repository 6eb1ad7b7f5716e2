from __future__ import annotations

import logging
from typing import Dict, List

from .base import CalibrationBundle, Stage
from .contract import can_run, ensure_versions, stage_name


logger = logging.getLogger(__name__)


def run_pipeline(B: CalibrationBundle, stages: List[Stage]) -> CalibrationBundle:
    """Run stages as their inputs become available, in list order.

    A failing stage is recorded under report["errors"]["stages"] and its
    dependants end up in report["warnings"]["pipeline"] as unresolved.
    """
    ensure_versions(B)
    n = len(stages)
    done = [False] * n
    failed = [False] * n
    reasons: Dict[int, List[str]] = {}

    progress = True
    while not all(done) and progress:
        progress = False
        for i, s in enumerate(stages):
            if done[i] or failed[i]:
                continue
            if s.should_skip(B):
                done[i] = True
                progress = True
                B.report["versions"]["stage_versions"].append(
                    {"name": stage_name(s), "version": getattr(s, "STAGE_VERSION", "0.0.0"), "skipped": True}
                )
                continue
            ok, why = can_run(s, B)
            if not ok:
                reasons[i] = why
                continue
            try:
                s(B)
                done[i] = True
            except ValueError as e:
                failed[i] = True
                B.report.setdefault("errors", {}).setdefault("stages", {})[stage_name(s)] = str(e)
                logger.warning("Stage '%s' failed: %s", stage_name(s), e)
            progress = True

    unresolved = [i for i in range(n) if not done[i] and not failed[i]]
    if unresolved:
        warns = B.report.setdefault("warnings", {}).setdefault("pipeline", [])
        for i in unresolved:
            detail = "; ".join(reasons.get(i, [])) or "unmet dependencies"
            warns.append(f"Stage '{stage_name(stages[i])}' unresolved: {detail}")
    return B
