"""ValidationSpec - 硬错误目录（HardErrorCatalog）

目录内容存放在 domain/specs/hard_errors_v1.yaml：
- code: 稳定错误码（FFV-xxx-nnn）
- profile: 所属校验档位（structure / generated）
- message / hint: 面向用户的说明
- minimal_repro: 最小复现，既是文档，也是校验器的回归用例

目录在进程启动时加载一次，作为显式的值传给校验器，不做模块级缓存。
"""

from __future__ import annotations

import copy
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any

import yaml

from flowheal.domain.value_objects.validation_issue import ValidationIssue

DEFAULT_SPEC_PATH = Path(__file__).resolve().parent.parent / "specs" / "hard_errors_v1.yaml"


class ValidationProfile(str, Enum):
    """校验档位

    - STRUCTURE: 只检查图结构与分支/检索节点的形状（默认）
    - GENERATED: 在 STRUCTURE 基础上增加生成式工作流的命名、IO、节点配置与变量引用规则
    """

    STRUCTURE = "structure"
    GENERATED = "generated"

    def includes(self, other: ValidationProfile) -> bool:
        if self is ValidationProfile.GENERATED:
            return True
        return other is ValidationProfile.STRUCTURE


class ValidationSpecLoadError(ValueError):
    def __init__(self, source_path: Path, message: str) -> None:
        super().__init__(f"{source_path}: {message}")
        self.source_path = source_path
        self.message = message


@dataclass(frozen=True, slots=True)
class HardErrorSpec:
    code: str
    profile: ValidationProfile
    message: str
    minimal_repro: dict[str, Any]
    hint: str | None = None


@dataclass(frozen=True)
class ValidationSpec:
    version: str
    entries: tuple[HardErrorSpec, ...]

    @classmethod
    def load(cls, path: Path = DEFAULT_SPEC_PATH) -> ValidationSpec:
        try:
            raw_text = path.read_text(encoding="utf-8")
        except OSError as exc:
            raise ValidationSpecLoadError(path, f"read failed: {exc}") from exc

        try:
            data = yaml.safe_load(raw_text)
        except yaml.YAMLError as exc:
            line_info = ""
            mark = getattr(exc, "problem_mark", None)
            if mark is not None:
                line_info = f":{mark.line + 1}:{mark.column + 1}"
            raise ValidationSpecLoadError(path, f"yaml parse error{line_info}: {exc}") from exc

        if not isinstance(data, dict):
            raise ValidationSpecLoadError(path, "top-level must be a mapping")
        return cls.from_mapping(data, source_path=path)

    @classmethod
    def from_mapping(cls, data: dict[str, Any], *, source_path: Path) -> ValidationSpec:
        version = data.get("version")
        if not isinstance(version, str) or not version:
            raise ValidationSpecLoadError(source_path, "version must be a non-empty string")

        raw_entries = data.get("hard_errors")
        if not isinstance(raw_entries, list) or not raw_entries:
            raise ValidationSpecLoadError(source_path, "hard_errors must be a non-empty list")

        entries: list[HardErrorSpec] = []
        seen: set[str] = set()
        for index, raw in enumerate(raw_entries):
            if not isinstance(raw, dict):
                raise ValidationSpecLoadError(source_path, f"hard_errors[{index}] must be a mapping")
            code = raw.get("code")
            message = raw.get("message")
            repro = raw.get("minimal_repro")
            if not isinstance(code, str) or not code:
                raise ValidationSpecLoadError(source_path, f"hard_errors[{index}].code is required")
            if code in seen:
                raise ValidationSpecLoadError(source_path, f"duplicate code: {code}")
            if not isinstance(message, str) or not message:
                raise ValidationSpecLoadError(source_path, f"{code}: message is required")
            if not isinstance(repro, dict) or "nodes" not in repro:
                raise ValidationSpecLoadError(source_path, f"{code}: minimal_repro.nodes is required")
            try:
                profile = ValidationProfile(raw.get("profile", ValidationProfile.STRUCTURE.value))
            except ValueError as exc:
                raise ValidationSpecLoadError(source_path, f"{code}: unknown profile") from exc
            hint = raw.get("hint")
            seen.add(code)
            entries.append(
                HardErrorSpec(
                    code=code,
                    profile=profile,
                    message=message,
                    # YAML 锚点会让多个复现共享同一对象，这里断开引用
                    minimal_repro=copy.deepcopy(repro),
                    hint=hint if isinstance(hint, str) else None,
                )
            )
        return cls(version=version, entries=tuple(entries))

    def get(self, code: str) -> HardErrorSpec | None:
        for entry in self.entries:
            if entry.code == code:
                return entry
        return None

    def codes(self, profile: ValidationProfile | None = None) -> list[str]:
        if profile is None:
            return [entry.code for entry in self.entries]
        return [entry.code for entry in self.entries if profile.includes(entry.profile)]

    def message_for(self, code: str) -> str:
        entry = self.get(code)
        return entry.message if entry is not None else code

    def minimal_repro(self, code: str) -> dict[str, Any]:
        entry = self.get(code)
        if entry is None:
            raise KeyError(code)
        return copy.deepcopy(entry.minimal_repro)

    def issue(
        self,
        code: str,
        *,
        node_id: str | None = None,
        edge_id: str | None = None,
        field_path: str | None = None,
        hint: str | None = None,
    ) -> ValidationIssue:
        entry = self.get(code)
        return ValidationIssue(
            code=code,
            message=entry.message if entry is not None else code,
            node_id=node_id or None,
            edge_id=edge_id or None,
            field_path=field_path,
            hint=hint if hint is not None else (entry.hint if entry is not None else None),
        )
