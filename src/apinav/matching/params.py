from __future__ import annotations

from typing import Sequence

from apinav.domain.models import MISSING_PARAM, ParamMismatch


def compare_params(frontend_params: Sequence[str], backend_params: Sequence[str]) -> list[ParamMismatch]:
    """
    Position-by-position, case-sensitive name comparison up to the longer list.
    A side that runs out reports "(missing)".
    """
    mismatches: list[ParamMismatch] = []
    for i in range(max(len(frontend_params), len(backend_params))):
        fe = frontend_params[i] if i < len(frontend_params) else ""
        be = backend_params[i] if i < len(backend_params) else ""
        if fe == be:
            continue
        mismatches.append(
            ParamMismatch(
                position=i + 1,
                frontend_param=fe or MISSING_PARAM,
                backend_param=be or MISSING_PARAM,
            )
        )
    return mismatches
