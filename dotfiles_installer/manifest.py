from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

import yaml

from .errors import ManifestError
from .lib.env import PATHS, expand_path, home_dir

logger = logging.getLogger(__name__)

PROMPT_TYPES = ("text", "confirm", "password", "select")
DEPENDENCY_TIERS = ("critical", "core", "optional")


@dataclass(frozen=True)
class ConfigItem:
    name: str
    path: str
    description: str = ""
    platforms: Tuple[str, ...] = ()

    def supports(self, os_name: str) -> bool:
        return not self.platforms or os_name in self.platforms


@dataclass(frozen=True)
class DependencyItem:
    name: str
    managers: Mapping[str, str] = field(default_factory=dict)

    def package_name(self, manager: str) -> str:
        return self.managers.get(manager) or self.name


@dataclass(frozen=True)
class ExternalDep:
    id: str
    name: str
    url: str
    destination: str
    method: str = "clone"
    condition: Mapping[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class PromptField:
    id: str
    label: str
    type: str = "text"
    default: str = ""
    required: bool = False
    options: Tuple[str, ...] = ()


@dataclass(frozen=True)
class MachinePrompt:
    id: str
    description: str
    destination: str
    template: str
    prompts: Tuple[PromptField, ...] = ()


@dataclass(frozen=True)
class Manifest:
    """Typed view over a parsed .dotfiles.yaml."""

    schema_version: str = "1.0"
    name: str = ""
    description: str = ""
    core: Tuple[ConfigItem, ...] = ()
    optional: Tuple[ConfigItem, ...] = ()
    archived: Tuple[ConfigItem, ...] = ()
    critical_deps: Tuple[DependencyItem, ...] = ()
    core_deps: Tuple[DependencyItem, ...] = ()
    optional_deps: Tuple[DependencyItem, ...] = ()
    external: Tuple[ExternalDep, ...] = ()
    machine_config: Tuple[MachinePrompt, ...] = ()
    post_install: str = ""
    path: Optional[Path] = None

    @property
    def root(self) -> Optional[Path]:
        return self.path.parent if self.path else None

    def all_configs(self) -> List[ConfigItem]:
        return [*self.core, *self.optional]

    def config_by_name(self, name: str) -> Optional[ConfigItem]:
        for item in (*self.core, *self.optional, *self.archived):
            if item.name == name:
                return item
        return None

    def dependency_tiers(self) -> List[Tuple[str, Tuple[DependencyItem, ...]]]:
        return [
            ("critical", self.critical_deps),
            ("core", self.core_deps),
            ("optional", self.optional_deps),
        ]

    def all_dependencies(self) -> List[DependencyItem]:
        return [*self.critical_deps, *self.core_deps, *self.optional_deps]

    def external_by_id(self, ext_id: str) -> Optional[ExternalDep]:
        for ext in self.external:
            if ext.id == ext_id:
                return ext
        return None

    def machine_config_by_id(self, mc_id: str) -> Optional[MachinePrompt]:
        for mc in self.machine_config:
            if mc.id == mc_id:
                return mc
        return None

    def validate(self) -> List[str]:
        """Return a list of human-readable problems (empty when valid)."""

        problems: List[str] = []

        seen_configs: set[str] = set()
        for section, items in (("configs.core", self.core), ("configs.optional", self.optional), ("archived", self.archived)):
            for i, item in enumerate(items):
                if not item.name:
                    problems.append(f"{section}[{i}]: name is required")
                elif item.name in seen_configs:
                    problems.append(f"{section}[{i}]: duplicate config name {item.name!r}")
                seen_configs.add(item.name)

        for tier, items in self.dependency_tiers():
            for i, dep in enumerate(items):
                if not dep.name:
                    problems.append(f"dependencies.{tier}[{i}]: name is required")

        seen_ext: set[str] = set()
        for i, ext in enumerate(self.external):
            where = f"external[{i}]"
            if not ext.id:
                problems.append(f"{where}: id is required")
            elif ext.id in seen_ext:
                problems.append(f"{where}: duplicate id {ext.id!r}")
            seen_ext.add(ext.id)
            if not ext.url:
                problems.append(f"{where}: url is required")
            if not ext.destination:
                problems.append(f"{where}: destination is required")

        seen_mc: set[str] = set()
        for i, mc in enumerate(self.machine_config):
            where = f"machine_config[{i}]"
            if not mc.id:
                problems.append(f"{where}: id is required")
            elif mc.id in seen_mc:
                problems.append(f"{where}: duplicate id {mc.id!r}")
            seen_mc.add(mc.id)
            if not mc.destination:
                problems.append(f"{where}: destination is required")
            if not mc.template:
                problems.append(f"{where}: template is required")
            for j, pf in enumerate(mc.prompts):
                if not pf.id:
                    problems.append(f"{where}.prompts[{j}]: id is required")
                if pf.type not in PROMPT_TYPES:
                    problems.append(f"{where}.prompts[{j}]: unknown type {pf.type!r}")
                if pf.type == "select" and not pf.options:
                    problems.append(f"{where}.prompts[{j}]: select prompt needs options")

        return problems


def _as_list(value: Any, where: str) -> List[Any]:
    if value is None:
        return []
    if not isinstance(value, list):
        raise ManifestError(f"{where} must be a list")
    return value


def _as_mapping(value: Any, where: str) -> Dict[str, Any]:
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise ManifestError(f"{where} must be a mapping")
    return value


def _str(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def _parse_config_item(raw: Any, where: str) -> ConfigItem:
    if isinstance(raw, str):
        return ConfigItem(name=raw, path=raw)
    obj = _as_mapping(raw, where)
    name = _str(obj.get("name")).strip()
    platforms = obj.get("platforms") or []
    if isinstance(platforms, str):
        platforms = [p.strip() for p in platforms.split(",") if p.strip()]
    return ConfigItem(
        name=name,
        path=_str(obj.get("path")).strip() or name,
        description=_str(obj.get("description")),
        platforms=tuple(_str(p) for p in platforms),
    )


def _parse_dependency(raw: Any, where: str) -> DependencyItem:
    if isinstance(raw, str):
        return DependencyItem(name=raw.strip())
    obj = _as_mapping(raw, where)
    managers = _as_mapping(obj.get("managers") or obj.get("package"), f"{where}.managers")
    return DependencyItem(
        name=_str(obj.get("name")).strip(),
        managers={str(k): _str(v) for k, v in managers.items()},
    )


def _parse_external(raw: Any, where: str) -> ExternalDep:
    obj = _as_mapping(raw, where)
    ext_id = _str(obj.get("id")).strip()
    condition = _as_mapping(obj.get("condition"), f"{where}.condition")
    return ExternalDep(
        id=ext_id,
        name=_str(obj.get("name")) or ext_id,
        url=_str(obj.get("url")).strip(),
        destination=_str(obj.get("destination")).strip(),
        method=_str(obj.get("method")).strip() or "clone",
        condition={str(k): _str(v) for k, v in condition.items()},
    )


def _parse_prompt_field(raw: Any, where: str) -> PromptField:
    obj = _as_mapping(raw, where)
    field_id = _str(obj.get("id")).strip()
    options = _as_list(obj.get("options"), f"{where}.options")
    return PromptField(
        id=field_id,
        label=_str(obj.get("prompt") or obj.get("label")) or field_id,
        type=_str(obj.get("type")).strip() or "text",
        default=_str(obj.get("default")),
        required=bool(obj.get("required", False)),
        options=tuple(_str(o) for o in options),
    )


def _parse_machine_prompt(raw: Any, where: str) -> MachinePrompt:
    obj = _as_mapping(raw, where)
    mc_id = _str(obj.get("id")).strip()
    prompts = _as_list(obj.get("prompts"), f"{where}.prompts")
    return MachinePrompt(
        id=mc_id,
        description=_str(obj.get("description")) or mc_id,
        destination=_str(obj.get("destination")).strip(),
        template=_str(obj.get("template")),
        prompts=tuple(_parse_prompt_field(p, f"{where}.prompts[{i}]") for i, p in enumerate(prompts)),
    )


def parse_manifest(raw: Mapping[str, Any], *, path: Optional[Path] = None) -> Manifest:
    """Build a Manifest from already-parsed YAML data and validate it."""

    if not isinstance(raw, Mapping):
        raise ManifestError(f"Manifest must be a mapping/dict, got {type(raw).__name__}")

    metadata = _as_mapping(raw.get("metadata"), "metadata")
    configs = _as_mapping(raw.get("configs"), "configs")
    deps = _as_mapping(raw.get("dependencies"), "dependencies")

    def items(value: Any, where: str, parse) -> Tuple[Any, ...]:
        return tuple(parse(v, f"{where}[{i}]") for i, v in enumerate(_as_list(value, where)))

    manifest = Manifest(
        schema_version=_str(raw.get("schema_version")) or "1.0",
        name=_str(metadata.get("name")),
        description=_str(metadata.get("description")),
        core=items(configs.get("core"), "configs.core", _parse_config_item),
        optional=items(configs.get("optional"), "configs.optional", _parse_config_item),
        archived=items(raw.get("archived"), "archived", _parse_config_item),
        critical_deps=items(deps.get("critical"), "dependencies.critical", _parse_dependency),
        core_deps=items(deps.get("core"), "dependencies.core", _parse_dependency),
        optional_deps=items(deps.get("optional"), "dependencies.optional", _parse_dependency),
        external=items(raw.get("external"), "external", _parse_external),
        machine_config=items(raw.get("machine_config"), "machine_config", _parse_machine_prompt),
        post_install=_str(raw.get("post_install")),
        path=path,
    )

    problems = manifest.validate()
    if problems:
        raise ManifestError(f"Invalid manifest{f' {path}' if path else ''}", problems=problems)
    return manifest


def load_manifest(path: str | Path) -> Manifest:
    """Load a manifest from a file, or from a directory containing one."""

    p = Path(path)
    if p.is_dir():
        found = _manifest_in(p)
        if found is None:
            raise ManifestError(f"No {PATHS.manifest_names[0]} found in {p}")
        p = found
    if not p.exists():
        raise ManifestError(f"Manifest not found: {p}")

    try:
        raw = yaml.safe_load(p.read_text(encoding="utf-8")) or {}
    except yaml.YAMLError as e:
        raise ManifestError(f"Failed to parse {p}: {e}") from e
    except OSError as e:
        raise ManifestError(f"Failed to read {p}: {e}") from e

    manifest = parse_manifest(raw, path=p.resolve())
    logger.info("Loaded manifest %s (%s)", p, manifest.name or "unnamed")
    return manifest


def _manifest_in(directory: Path) -> Optional[Path]:
    for name in PATHS.manifest_names:
        candidate = directory / name
        if candidate.is_file():
            return candidate
    return None


def candidate_dirs(*, cwd: Optional[Path] = None, home: Optional[Path] = None) -> List[Path]:
    dirs = [cwd or Path.cwd()]
    dirs.extend(expand_path(d, home=home or home_dir()) for d in PATHS.dotfiles_candidates)
    return dirs


def discover_manifest(*, cwd: Optional[Path] = None, home: Optional[Path] = None) -> Path:
    searched = candidate_dirs(cwd=cwd, home=home)
    for d in searched:
        found = _manifest_in(d)
        if found is not None:
            logger.debug("Discovered manifest at %s", found)
            return found
    raise ManifestError(
        "No manifest found",
        problems=[f"searched {d}" for d in searched],
    )


def load_from_discovery(
    explicit: Optional[str] = None,
    *,
    cwd: Optional[Path] = None,
    home: Optional[Path] = None,
) -> Manifest:
    if explicit:
        return load_manifest(explicit)
    return load_manifest(discover_manifest(cwd=cwd, home=home))


def manifest_items_by_name(items: Iterable[ConfigItem], names: Sequence[str]) -> List[ConfigItem]:
    """Resolve names to declared items, preserving declaration order."""

    wanted = set(names)
    return [item for item in items if item.name in wanted]
