"""
Module descriptor (module.xml): metadata model, builder from scope sets, XML render/parse.

Element order is fixed by the host platform:
id, name, description, version, requiredignitionversion, [requiredframeworkversion],
[license], [documentation], depends*, gateway jar*, client/designer jar*, hook*.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple
from xml.etree import ElementTree as ET

from .artifacts import Artifact
from .core.errors import ConfigurationError
from .scopes import CLIENT, DESIGNER, GATEWAY, SCOPE_LETTERS, ScopeSets

logger = logging.getLogger(__name__)

DESCRIPTOR_FILE_NAME = "module.xml"
LICENSE_FILE_NAME = "license.html"
DOC_DIR_NAME = "doc"
DOC_PREFIX = "doc/"
FRAMEWORK_VERSION_UNSET = -1

JAR_SCOPE_SEPARATE = "separate"
JAR_SCOPE_COMBINED = "combined"
JAR_SCOPE_MODES = (JAR_SCOPE_SEPARATE, JAR_SCOPE_COMBINED)

_XML_DECLARATION = '<?xml version="1.0" encoding="UTF-8"?>'


@dataclass(frozen=True)
class ModuleDependency:
    scope: str
    module_id: str


@dataclass(frozen=True)
class ModuleHook:
    scope: str
    hook_class: str


@dataclass(frozen=True)
class JarEntry:
    """One <jar> declaration. artifact is None when parsed back from XML."""

    scope: str
    file_name: str
    artifact: Optional[Artifact] = field(default=None, compare=False)


@dataclass
class ModuleMetadata:
    """Module-level configuration consumed by the descriptor builder."""

    id: Optional[str] = None
    name: Optional[str] = None
    version: Optional[str] = None
    required_ignition_version: Optional[str] = None
    description: Optional[str] = None
    required_framework_version: Optional[int] = FRAMEWORK_VERSION_UNSET
    license: Optional[str] = None
    documentation: Optional[str] = None
    depends: List[ModuleDependency] = field(default_factory=list)
    hooks: List[ModuleHook] = field(default_factory=list)
    jar_scope_mode: str = JAR_SCOPE_SEPARATE

    def validate(self) -> None:
        """Raise ConfigurationError naming the first missing required field. No I/O."""
        for attr in ("id", "name", "version", "required_ignition_version"):
            value = getattr(self, attr)
            if value is None or not str(value).strip():
                raise ConfigurationError(f"module.{attr} is required")
        if self.jar_scope_mode not in JAR_SCOPE_MODES:
            raise ConfigurationError(
                f"module.jar_scope_mode must be one of {JAR_SCOPE_MODES}, got {self.jar_scope_mode!r}"
            )
        for d in self.depends:
            if not d.scope or not d.module_id:
                raise ConfigurationError(f"module.depends entry needs scope and module_id: {d!r}")
        for h in self.hooks:
            if not h.scope or not h.hook_class:
                raise ConfigurationError(f"module.hooks entry needs scope and class: {h!r}")
        if not self.hooks:
            logger.warning("Module %s declares no hooks", self.id)


@dataclass(frozen=True)
class ModuleDescriptor:
    id: str
    name: str
    description: str
    version: str
    required_ignition_version: str
    required_framework_version: Optional[int] = None
    license: Optional[str] = None
    documentation: Optional[str] = None
    depends: Tuple[ModuleDependency, ...] = ()
    jars: Tuple[JarEntry, ...] = ()
    hooks: Tuple[ModuleHook, ...] = ()

    @property
    def jar_file_names(self) -> List[str]:
        """Distinct jar file names in declaration order."""
        seen: Dict[str, None] = {}
        for j in self.jars:
            seen.setdefault(j.file_name, None)
        return list(seen)


def documentation_reference(path: Optional[str]) -> Optional[str]:
    """Docs are staged at the archive root, so a leading 'doc/' is dropped."""
    if path is None:
        return None
    if path.startswith(DOC_PREFIX):
        return path[len(DOC_PREFIX):]
    return path


def _framework_version(value: Optional[int]) -> Optional[int]:
    if value is None or value == FRAMEWORK_VERSION_UNSET:
        return None
    return int(value)


def _separate_jar_entries(scope_sets: ScopeSets) -> List[JarEntry]:
    jars = [JarEntry(GATEWAY, a.jar_name, a) for a in scope_sets.gateway]
    for a in scope_sets.client_designer:
        scope = ""
        if a in scope_sets.client:
            scope += CLIENT
        if a in scope_sets.designer:
            scope += DESIGNER
        if not scope:
            continue
        if a in scope_sets.gateway:
            logger.warning(
                "%s is declared twice (scope G and scope %s); both entries point at %s",
                a.coordinates(),
                scope,
                a.jar_name,
            )
        jars.append(JarEntry(scope, a.jar_name, a))
    return jars


def _combined_jar_entries(scope_sets: ScopeSets) -> List[JarEntry]:
    letters: Dict[Artifact, set] = {}
    for a in scope_sets.gateway.union(scope_sets.client_designer):
        for letter in SCOPE_LETTERS:
            if a in scope_sets.for_letter(letter):
                letters.setdefault(a, set()).add(letter)
    jars = []
    for a, found in letters.items():
        scope = "".join(letter for letter in SCOPE_LETTERS if letter in found)
        jars.append(JarEntry(scope, a.jar_name, a))
    return jars


def build_descriptor(scope_sets: ScopeSets, metadata: ModuleMetadata) -> ModuleDescriptor:
    """Validate metadata and build the descriptor. Raises ConfigurationError before any I/O."""
    metadata.validate()
    if metadata.jar_scope_mode == JAR_SCOPE_COMBINED:
        jars = _combined_jar_entries(scope_sets)
    else:
        jars = _separate_jar_entries(scope_sets)

    return ModuleDescriptor(
        id=str(metadata.id),
        name=str(metadata.name),
        description=metadata.description or "",
        version=str(metadata.version),
        required_ignition_version=str(metadata.required_ignition_version),
        required_framework_version=_framework_version(metadata.required_framework_version),
        license=LICENSE_FILE_NAME if metadata.license else None,
        documentation=documentation_reference(metadata.documentation),
        depends=tuple(metadata.depends),
        jars=tuple(jars),
        hooks=tuple(metadata.hooks),
    )


def _text_element(parent: ET.Element, tag: str, text: str, **attrs: str) -> ET.Element:
    el = ET.SubElement(parent, tag, attrs)
    el.text = text
    return el


def render_module_xml(descriptor: ModuleDescriptor) -> bytes:
    """Serialize descriptor to UTF-8 module.xml bytes. Same descriptor, same bytes."""
    root = ET.Element("modules")
    module = ET.SubElement(root, "module")

    _text_element(module, "id", descriptor.id)
    _text_element(module, "name", descriptor.name)
    _text_element(module, "description", descriptor.description)
    _text_element(module, "version", descriptor.version)
    _text_element(module, "requiredignitionversion", descriptor.required_ignition_version)
    if descriptor.required_framework_version is not None:
        _text_element(module, "requiredframeworkversion", str(descriptor.required_framework_version))
    if descriptor.license is not None:
        _text_element(module, "license", descriptor.license)
    if descriptor.documentation is not None:
        _text_element(module, "documentation", descriptor.documentation)
    for d in descriptor.depends:
        _text_element(module, "depends", d.module_id, scope=d.scope)
    # builder already orders gateway jars ahead of client/designer jars
    for j in descriptor.jars:
        _text_element(module, "jar", j.file_name, scope=j.scope)
    for h in descriptor.hooks:
        _text_element(module, "hook", h.hook_class, scope=h.scope)

    ET.indent(root, space="  ")
    body = ET.tostring(root, encoding="unicode")
    return (_XML_DECLARATION + "\n" + body + "\n").encode("utf-8")


def _child_text(module: ET.Element, tag: str) -> Optional[str]:
    el = module.find(tag)
    if el is None:
        return None
    return el.text or ""


def parse_module_xml(data: bytes) -> ModuleDescriptor:
    """Parse module.xml bytes back into a ModuleDescriptor."""
    try:
        root = ET.fromstring(data)
    except ET.ParseError as exc:
        raise ConfigurationError(f"module.xml is not well-formed: {exc}") from exc
    module = root.find("module") if root.tag == "modules" else None
    if module is None:
        raise ConfigurationError("module.xml has no <modules><module> element")

    fw = _child_text(module, "requiredframeworkversion")
    return ModuleDescriptor(
        id=_child_text(module, "id") or "",
        name=_child_text(module, "name") or "",
        description=_child_text(module, "description") or "",
        version=_child_text(module, "version") or "",
        required_ignition_version=_child_text(module, "requiredignitionversion") or "",
        required_framework_version=int(fw) if fw else None,
        license=_child_text(module, "license"),
        documentation=_child_text(module, "documentation"),
        depends=tuple(
            ModuleDependency(el.get("scope", ""), el.text or "") for el in module.findall("depends")
        ),
        jars=tuple(JarEntry(el.get("scope", ""), el.text or "") for el in module.findall("jar")),
        hooks=tuple(ModuleHook(el.get("scope", ""), el.text or "") for el in module.findall("hook")),
    )


__all__ = [
    "DESCRIPTOR_FILE_NAME",
    "DOC_DIR_NAME",
    "FRAMEWORK_VERSION_UNSET",
    "JAR_SCOPE_COMBINED",
    "JAR_SCOPE_MODES",
    "JAR_SCOPE_SEPARATE",
    "JarEntry",
    "LICENSE_FILE_NAME",
    "ModuleDependency",
    "ModuleDescriptor",
    "ModuleHook",
    "ModuleMetadata",
    "build_descriptor",
    "documentation_reference",
    "parse_module_xml",
    "render_module_xml",
]
