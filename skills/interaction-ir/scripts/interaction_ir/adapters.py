from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional

from .errors import IRFormatError
from .ir import IR_VERSION, ActionTree, tree_from_json, tree_to_json


logger = logging.getLogger(__name__)

ACTIONIR = "actionir"


@dataclass(frozen=True)
class CreateResult:
    success: bool
    tree: ActionTree = ()
    error: Optional[str] = None

    @classmethod
    def ok(cls, tree: ActionTree) -> "CreateResult":
        return cls(success=True, tree=tree)

    @classmethod
    def failed(cls, error: str) -> "CreateResult":
        return cls(success=False, error=error)


class FrontEndAdapter:
    """CREATE: source text to IR for one or more languages."""

    languages: tuple = ()

    def create(self, source: str, language: str, *, path: str = "") -> CreateResult:
        raise NotImplementedError


class CodeGenerator:
    """GENERATE: IR back to source text."""

    languages: tuple = ()

    def generate(self, tree: ActionTree, language: str) -> str:
        raise NotImplementedError


class JsonIRAdapter(FrontEndAdapter):
    """Reads the JSON interchange form directly (``*.air.json`` files)."""

    languages = (ACTIONIR,)

    def create(self, source: str, language: str, *, path: str = "") -> CreateResult:
        try:
            payload = json.loads(source)
        except json.JSONDecodeError as exc:
            return CreateResult.failed(f"invalid JSON at line {exc.lineno}: {exc.msg}")
        try:
            tree = tree_from_json(payload, default_file=path)
        except IRFormatError as exc:
            return CreateResult.failed(str(exc))
        return CreateResult.ok(tree)


class JsonIRGenerator(CodeGenerator):
    languages = (ACTIONIR,)

    def generate(self, tree: ActionTree, language: str) -> str:
        payload = {"meta": {"version": IR_VERSION}, "nodes": tree_to_json(tree)}
        return json.dumps(payload, ensure_ascii=True, indent=2) + "\n"


class AdapterRegistry:
    def __init__(
        self,
        adapters: Iterable[FrontEndAdapter] = (),
        generators: Iterable[CodeGenerator] = (),
    ) -> None:
        self._adapters: Dict[str, FrontEndAdapter] = {}
        self._generators: Dict[str, CodeGenerator] = {}
        for adapter in adapters:
            self.register_adapter(adapter)
        for generator in generators:
            self.register_generator(generator)

    def register_adapter(self, adapter: FrontEndAdapter) -> None:
        for language in adapter.languages:
            self._adapters.setdefault(language, adapter)

    def register_generator(self, generator: CodeGenerator) -> None:
        for language in generator.languages:
            self._generators.setdefault(language, generator)

    def languages(self) -> List[str]:
        return sorted(self._adapters)

    def supports(self, language: str) -> bool:
        return language in self._adapters

    def create(self, source: str, language: str, *, path: str = "") -> CreateResult:
        adapter = self._adapters.get(language)
        if adapter is None:
            return CreateResult.failed(f"no front-end adapter for language {language!r}")
        try:
            return adapter.create(source, language, path=path)
        except Exception as exc:
            logger.debug("adapter %s raised on %s", type(adapter).__name__, path, exc_info=True)
            return CreateResult.failed(f"{type(exc).__name__}: {exc}")

    def generate(self, tree: ActionTree, language: str) -> str:
        generator = self._generators.get(language)
        if generator is None:
            raise IRFormatError(f"no code generator for language {language!r}")
        return generator.generate(tree, language)


def default_registry() -> AdapterRegistry:
    return AdapterRegistry(adapters=[JsonIRAdapter()], generators=[JsonIRGenerator()])
