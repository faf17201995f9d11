from pydantic import RootModel, field_validator


class ServicesFile(RootModel[dict[str, str]]):
    """Startup services file: a JSON object mapping display name to target."""

    @field_validator("root")
    @classmethod
    def _targets_not_blank(cls, value: dict[str, str]) -> dict[str, str]:
        for name, target in value.items():
            if not target.strip():
                raise ValueError(f"service {name!r} has an empty target")
        return value
