from __future__ import annotations

import os
from typing import Dict, List, Optional

import yaml
from pydantic import BaseModel, Field

from .contracts import step_key


class ClassificationConfig(BaseModel):
    """Error message signatures used to classify handler failures."""

    transient_signatures: List[str] = Field(
        default_factory=lambda: ["Query.fromBytes"]
    )
    cancel_signatures: List[str] = Field(default_factory=lambda: ["USER_REJECT"])


class StepPolicy(BaseModel):
    """Per step kind overrides of the workflow defaults."""

    timeout: Optional[float] = None
    transient_signatures: Optional[List[str]] = None
    cancel_signatures: Optional[List[str]] = None


class WorkflowConfig(BaseModel):
    """Timing and classification settings for the orchestrator."""

    step_timeout: float = 30.0
    settle_delay: float = 1.0
    transient_retry_delay: float = 3.0
    gate_release_delay: float = 1.0
    classification: ClassificationConfig = ClassificationConfig()
    step_policies: Dict[str, StepPolicy] = Field(default_factory=dict)

    def timeout_for(self, step_id: str) -> float:
        policy = self.step_policies.get(step_key(step_id))
        if policy is not None and policy.timeout is not None:
            return policy.timeout
        return self.step_timeout


class ProfileConfig(BaseModel):
    """Settings for the profile update and migration workflows."""

    max_media_bytes: int = 100 * 1024 * 1024
    topic_propagation_delay: float = 2.0


class ProfileflowConfig(BaseModel):
    """Top-level configuration model."""

    workflow: WorkflowConfig = WorkflowConfig()
    profile: ProfileConfig = ProfileConfig()
    log_level: str = "INFO"


def load_config(path: Optional[str] = None) -> ProfileflowConfig:
    """Load configuration from YAML file.

    Args:
        path: Optional path to config file. Falls back to PROFILEFLOW_CONFIG env
            variable or 'profileflow.yaml' in the current directory.
    """

    config_path = path or os.getenv("PROFILEFLOW_CONFIG", "profileflow.yaml")
    if os.path.exists(config_path):
        with open(config_path) as f:
            data = yaml.safe_load(f) or {}
        config = ProfileflowConfig(**data)
    else:
        config = ProfileflowConfig()

    env_level = os.getenv("PROFILEFLOW_LOG_LEVEL")
    if env_level:
        config.log_level = env_level.upper()
    return config
