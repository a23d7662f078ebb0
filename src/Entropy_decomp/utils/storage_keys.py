"""Deterministic object-storage keys for requirement artefacts."""

from __future__ import annotations

from typing import Literal

DecompositionArtifact = Literal["result", "themes", "features"]


def requirement_prefix(client_id: str, project_id: str, requirement_id: str) -> str:
    return f"clients/{client_id}/projects/{project_id}/requirements/{requirement_id}"


def decomposition_key(
    client_id: str, project_id: str, requirement_id: str, artifact: DecompositionArtifact
) -> str:
    return f"{requirement_prefix(client_id, project_id, requirement_id)}/decomposition/{artifact}.json"


def extracted_text_key(client_id: str, project_id: str, requirement_id: str) -> str:
    return f"{requirement_prefix(client_id, project_id, requirement_id)}/extracted/text.txt"


__all__ = ["decomposition_key", "extracted_text_key", "requirement_prefix"]
