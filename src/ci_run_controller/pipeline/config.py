"""Configuration for the run controller.

Configuration is loaded from:
- environment variables
- and a local `.env` file (if present)

To avoid collisions with the token the CI platform itself injects as
`GITHUB_TOKEN`, this project uses a dedicated variable: `CI_GITHUB_TOKEN`.
"""

from __future__ import annotations

from pathlib import Path

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class ControllerSettings(BaseSettings):
    """Settings for the run controller.

    Environment variables:
    - LOG_LEVEL              (optional)
    - RUN_STATE_PATH         (optional)
    - RUN_RETAIN_TERMINAL    (optional)
    - CI_WORKFLOW_FILE       (optional)
    - CI_GITHUB_TOKEN        (required only when CI_CANCEL_VIA_GITHUB is set)
    - GITHUB_BASE_URL        (optional)
    - CI_GITHUB_REPOSITORY   (required only when CI_CANCEL_VIA_GITHUB is set)
    - CI_CANCEL_VIA_GITHUB   (optional)

    Notes:
        Pydantic-settings supports overriding the env file in tests via:
        `ControllerSettings(_env_file=path_to_env)`.
    """

    log_level: str = Field(
        default="INFO",
        validation_alias="LOG_LEVEL",
        description="Root logging level",
    )

    run_state_path: Path = Field(
        default=Path("run_state"),
        validation_alias="RUN_STATE_PATH",
        description="Directory where run state is persisted",
    )

    run_retain_terminal: int = Field(
        default=1000,
        ge=0,
        validation_alias="RUN_RETAIN_TERMINAL",
        description=(
            "How many completed or cancelled runs the store keeps; older ones are pruned. "
            "0 keeps every run."
        ),
    )

    workflow_file: Path | None = Field(
        default=None,
        validation_alias="CI_WORKFLOW_FILE",
        description="JSON workflow definition; the built-in Build workflow is used when unset",
    )

    github_token: str = Field(
        default="",
        validation_alias="CI_GITHUB_TOKEN",
        description="GitHub token used to cancel superseded workflow runs",
    )
    github_base_url: str = Field(
        default="https://api.github.com",
        validation_alias="GITHUB_BASE_URL",
        description="GitHub API base URL (useful for GitHub Enterprise)",
    )
    github_repository: str = Field(
        default="",
        validation_alias="CI_GITHUB_REPOSITORY",
        description="Repository whose workflow runs are cancelled, in the form 'owner/repo'",
    )

    cancel_via_github: bool = Field(
        default=False,
        validation_alias="CI_CANCEL_VIA_GITHUB",
        description=(
            "If true, superseded runs are cancelled through the GitHub Actions API. "
            "Otherwise cancellation is only recorded and logged."
        ),
    )

    model_config = SettingsConfigDict(
        env_prefix="",
        env_file=".env",
        extra="ignore",
    )

    @model_validator(mode="after")
    def _require_github_auth_for_cancellation(self) -> ControllerSettings:
        if self.cancel_via_github:
            if not self.github_token.strip():
                raise ValueError("CI_GITHUB_TOKEN is required when CI_CANCEL_VIA_GITHUB is set")
            if not self.github_repository.strip():
                raise ValueError(
                    "CI_GITHUB_REPOSITORY is required when CI_CANCEL_VIA_GITHUB is set"
                )
        return self

    @property
    def runs_state_file(self) -> Path:
        """Path where runs and group slots are persisted."""

        return self.run_state_path / "runs.json"
