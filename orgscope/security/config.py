from __future__ import annotations

import re
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field

from orgscope.scope.types import EntityType


class AuthConfig(BaseModel):
    provider: str = "dev-bearer"
    authorization_header: str = "Authorization"
    bearer_prefix: str = "Bearer"


DEV_PROVIDER = "dev-bearer"


def ensure_provider_allowed(auth: AuthConfig, environment: str) -> None:
    """
    Refuse to serve with the dev bearer scheme outside development.

    That scheme takes any bearer token as the principal id, so anyone could
    act as any user, superadmin included.
    """

    if auth.provider == DEV_PROVIDER and environment != "development":
        raise RuntimeError(
            f"auth provider {DEV_PROVIDER!r} is only allowed in development (environment={environment!r})"
        )


class DefaultRule(BaseModel):
    auth_required: bool = True
    entity: EntityType | None = None


class RouteRule(BaseModel):
    path: str
    methods: list[str] = Field(default_factory=lambda: ["GET"])

    auth_required: bool | None = None
    # Entity type the route's queries are scoped to. A scope that can never
    # see this entity is refused before the handler runs.
    entity: EntityType | None = None

    def normalized_methods(self) -> set[str]:
        return {m.upper() for m in self.methods}


class SecurityConfigModel(BaseModel):
    auth: AuthConfig = Field(default_factory=AuthConfig)
    default: DefaultRule = Field(default_factory=DefaultRule)
    routes: list[RouteRule] = Field(default_factory=list)


@dataclass(frozen=True)
class EffectiveRule:
    """
    The rule that applies to one request, with defaults filled in.
    """

    auth_required: bool
    entity: EntityType | None


def _path_template_to_regex(path_template: str) -> re.Pattern[str]:
    # "/small-groups/{id}" -> r"^/small-groups/[^/]+$"
    regex = re.sub(r"\{[^/]+\}", r"[^/]+", path_template)
    return re.compile(rf"^{regex}$")


class SecurityConfig:
    """
    Validated route rules plus the path/method lookup used per request.
    """

    def __init__(self, model: SecurityConfigModel):
        self.model = model

        self._exact_rules: dict[str, list[RouteRule]] = {}
        for rule in self.model.routes:
            self._exact_rules.setdefault(rule.path, []).append(rule)
        self._compiled_rules = [(_path_template_to_regex(r.path), r) for r in self.model.routes]

    @property
    def auth(self) -> AuthConfig:
        return self.model.auth

    def match(self, path: str, method: str) -> EffectiveRule:
        """
        Rule for (path, method) with defaults applied.

        Exact paths win over templates, so ``/notifications/unread-count``
        is not swallowed by ``/notifications/{id}``.
        """

        method = method.upper()
        default = self.model.default

        for candidate in self._exact_rules.get(path, []):
            if method in candidate.normalized_methods():
                return _effective(candidate, default)

        for regex, candidate in self._compiled_rules:
            if method in candidate.normalized_methods() and regex.match(path):
                return _effective(candidate, default)

        return EffectiveRule(auth_required=default.auth_required, entity=default.entity)


def _effective(rule: RouteRule, default: DefaultRule) -> EffectiveRule:
    # A route scoped to an entity always needs a principal to scope by.
    inferred_auth_required = default.auth_required or rule.entity is not None

    return EffectiveRule(
        auth_required=inferred_auth_required if rule.auth_required is None else rule.auth_required,
        entity=rule.entity if rule.entity is not None else default.entity,
    )


def load_security_config(path: Path) -> SecurityConfig:
    raw_text = path.read_text(encoding="utf-8")
    raw: dict[str, Any] = yaml.safe_load(raw_text) or {}

    if "security" not in raw:
        raise ValueError(f"Missing top-level 'security' key in config: {path}")

    model = SecurityConfigModel.model_validate(raw["security"])
    return SecurityConfig(model)
