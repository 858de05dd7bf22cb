"""Run ``cargo rustdoc`` and load the JSON documentation it produces."""

from __future__ import annotations

import json
import logging
import re
import shutil
import subprocess
import tomllib
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List

from rustdocfinder.errors import (
    BuildFailed,
    ExtractionTimeout,
    MalformedDump,
    NotAProject,
    ToolchainMissing,
)

LOGGER = logging.getLogger(__name__)

MANIFEST_NAME = "Cargo.toml"

_TOOLCHAIN_MISSING_PATTERNS = (
    re.compile(r"toolchain '[^']+' is not installed"),
    re.compile(r"is not installed for the toolchain"),
    re.compile(r"no such command: .?rustdoc"),
    re.compile(r"the option `Z` is only accepted on the nightly compiler"),
)


@dataclass(slots=True)
class RawDocDump:
    """Parsed rustdoc JSON for one crate, before normalization."""

    crate_name: str
    json_path: Path
    data: Dict[str, Any]


def find_manifest(project_root: Path) -> Path:
    manifest = project_root / MANIFEST_NAME
    if not project_root.is_dir() or not manifest.is_file():
        raise NotAProject(f"{MANIFEST_NAME} not found in project path: {project_root}")
    return manifest


def read_crate_name(manifest_path: Path) -> str:
    """Return the library target name rustdoc uses for its output file."""
    fallback = manifest_path.parent.name
    try:
        manifest = tomllib.loads(manifest_path.read_text(encoding="utf-8"))
    except (OSError, tomllib.TOMLDecodeError) as exc:
        raise NotAProject(f"Unreadable {MANIFEST_NAME} at {manifest_path}: {exc}") from exc

    lib_name = manifest.get("lib", {}).get("name")
    package_name = manifest.get("package", {}).get("name")
    name = lib_name or package_name or fallback
    return str(name).replace("-", "_")


def _looks_like_missing_toolchain(stderr: str) -> bool:
    return any(pattern.search(stderr) for pattern in _TOOLCHAIN_MISSING_PATTERNS)


class RustdocExtractor:
    """Produces a structured documentation dump for a Cargo project.

    The call blocks for the whole ``cargo rustdoc`` run and is meant to be
    issued from a worker thread.
    """

    def __init__(
        self,
        *,
        toolchain: str | None = "nightly",
        timeout: float = 600.0,
        dump_dir: Path | None = None,
        cargo: str = "cargo",
    ) -> None:
        self.toolchain = toolchain
        self.timeout = timeout
        self.dump_dir = dump_dir
        self.cargo = cargo

    def build_command(self) -> List[str]:
        command = [self.cargo]
        if self.toolchain:
            command.append(f"+{self.toolchain}")
        command += [
            "rustdoc",
            "-q",
            "--lib",
            "--",
            "-Z",
            "unstable-options",
            "--output-format",
            "json",
        ]
        return command

    def extract(self, project_root: Path) -> RawDocDump:
        project_root = Path(project_root)
        manifest = find_manifest(project_root)
        crate_name = read_crate_name(manifest)

        if shutil.which(self.cargo) is None:
            raise ToolchainMissing(f"`{self.cargo}` executable not found on PATH")

        command = self.build_command()
        LOGGER.info("Running %s in %s", " ".join(command), project_root)
        try:
            completed = subprocess.run(
                command,
                cwd=project_root,
                capture_output=True,
                text=True,
                timeout=self.timeout,
                check=False,
            )
        except subprocess.TimeoutExpired as exc:
            raise ExtractionTimeout(
                f"cargo rustdoc exceeded {self.timeout:.0f}s for {project_root}"
            ) from exc
        except FileNotFoundError as exc:
            raise ToolchainMissing(f"Unable to execute `{self.cargo}`: {exc}") from exc

        if completed.returncode != 0:
            stderr = completed.stderr or ""
            LOGGER.error("cargo rustdoc failed for %s: %s", project_root, stderr.strip())
            if _looks_like_missing_toolchain(stderr):
                raise ToolchainMissing(
                    f"Rust toolchain '{self.toolchain}' is not available: {stderr.strip()}"
                )
            raise BuildFailed(
                f"cargo rustdoc exited with status {completed.returncode}: {stderr.strip()}",
                stderr=stderr,
            )
        if completed.stderr:
            LOGGER.debug("cargo rustdoc stderr: %s", completed.stderr.strip())

        json_path = project_root / "target" / "doc" / f"{crate_name}.json"
        if not json_path.is_file():
            raise BuildFailed(
                f"rustdoc JSON output not found at expected path: {json_path}",
                stderr=completed.stderr or "",
            )

        data = load_dump_file(json_path)
        if self.dump_dir is not None:
            json_path = self._keep_copy(json_path)
        LOGGER.info("Loaded rustdoc JSON for crate %s from %s", crate_name, json_path)
        return RawDocDump(crate_name=crate_name, json_path=json_path, data=data)

    def _keep_copy(self, json_path: Path) -> Path:
        assert self.dump_dir is not None
        self.dump_dir.mkdir(parents=True, exist_ok=True)
        target = self.dump_dir / json_path.name
        shutil.copyfile(json_path, target)
        return target


def load_dump_file(json_path: Path) -> Dict[str, Any]:
    try:
        with json_path.open("r", encoding="utf-8") as handle:
            data = json.load(handle)
    except json.JSONDecodeError as exc:
        raise MalformedDump(f"Invalid rustdoc JSON in {json_path}: {exc}") from exc
    if not isinstance(data, dict):
        raise MalformedDump(f"Top-level rustdoc JSON in {json_path} is not an object")
    return data
