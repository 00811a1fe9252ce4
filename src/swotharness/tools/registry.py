"""ToolRegistry — categorized catalog of every tool offered to the model."""

from __future__ import annotations

from collections.abc import Iterable

from swotharness.types.tools import RegisteredTool, ToolCategory, ToolDefinition


class ToolRegistry:
    """Maps tool name to (definition, category).

    The category decides two things in the loop: whether a call needs
    approval (write only) and whether its result becomes a content block
    (render) or plain tool-result text (read/write).

    Usage::

        registry = ToolRegistry()
        registry.register_all(RENDER_TOOLS, ToolCategory.RENDER)
        registry.requires_approval("write_file")

    Built once at composition time and only read during turns.
    """

    def __init__(self) -> None:
        self._tools: dict[str, RegisteredTool] = {}

    # ------------------------------------------------------------------
    # Registration
    # ------------------------------------------------------------------

    def register(self, definition: ToolDefinition, category: ToolCategory) -> None:
        """Add or overwrite a tool under its definition name."""
        self._tools[definition.name] = RegisteredTool(definition, category)

    def register_all(
        self, definitions: Iterable[ToolDefinition], category: ToolCategory,
    ) -> None:
        """Register several tools with one shared category."""
        for definition in definitions:
            self.register(definition, category)

    # ------------------------------------------------------------------
    # Lookup
    # ------------------------------------------------------------------

    def get(self, name: str) -> RegisteredTool | None:
        return self._tools.get(name)

    def get_category(self, name: str) -> ToolCategory | None:
        entry = self._tools.get(name)
        return entry.category if entry is not None else None

    def requires_approval(self, name: str) -> bool:
        """True only for write tools; unknown names are simply False."""
        return self.get_category(name) is ToolCategory.WRITE

    def get_all_definitions(self) -> list[ToolDefinition]:
        """Every definition in registration order (the model's tool offer)."""
        return [entry.definition for entry in self._tools.values()]

    def get_definitions_by_category(self, category: ToolCategory) -> list[ToolDefinition]:
        return [
            entry.definition
            for entry in self._tools.values()
            if entry.category is category
        ]

    def get_all_names(self) -> list[str]:
        return list(self._tools)

    def get_names_by_category(self, category: ToolCategory) -> list[str]:
        return [
            name for name, entry in self._tools.items() if entry.category is category
        ]

    # ------------------------------------------------------------------
    # Dunder helpers
    # ------------------------------------------------------------------

    def __len__(self) -> int:
        return len(self._tools)

    def __contains__(self, name: object) -> bool:
        return name in self._tools

    def __repr__(self) -> str:
        by_cat = {
            cat.value: self.get_names_by_category(cat) for cat in ToolCategory
        }
        return f"ToolRegistry({by_cat})"
