"""
Component registry — the static set of components hostctl manages.

Built once at process start and never mutated afterwards. Dependency
order is resolved with Kahn's algorithm so that ``--with-deps``
installs prerequisites before the components that need them.
"""

from __future__ import annotations

from collections.abc import Iterable, Iterator

from hostctl.components.base import Component


class ComponentRegistry:
    """Components by name, in registration order."""

    def __init__(self, components: Iterable[Component] = ()):
        self._components: dict[str, Component] = {}
        for component in components:
            self.register(component)

    def register(self, component: Component) -> None:
        if component.name in self._components:
            raise ValueError(f"Duplicate component: {component.name}")
        self._components[component.name] = component

    def get(self, name: str) -> Component | None:
        return self._components.get(name)

    def __getitem__(self, name: str) -> Component:
        return self._components[name]

    def __contains__(self, name: object) -> bool:
        return name in self._components

    def __iter__(self) -> Iterator[Component]:
        return iter(self._components.values())

    def __len__(self) -> int:
        return len(self._components)

    def names(self) -> list[str]:
        return list(self._components)

    def validate(self) -> list[str]:
        """Check the dependency graph.

        Checks for:
        - References to unknown components
        - Cycles (Kahn's algorithm)

        Returns:
            List of error strings (empty = valid).
        """
        errors: list[str] = []
        for comp in self:
            for dep in comp.depends_on:
                if dep not in self._components:
                    errors.append(f"Component '{comp.name}' depends on unknown component '{dep}'")
        if errors:
            return errors

        if len(self._topological(self.names())) < len(self._components):
            errors.append("Dependency cycle detected between components")
        return errors

    def dependency_order(self, names: Iterable[str]) -> list[str]:
        """``names`` plus everything they depend on, dependencies first."""
        wanted: set[str] = set()
        stack = list(names)
        while stack:
            name = stack.pop()
            if name in wanted:
                continue
            if name not in self._components:
                raise KeyError(f"Unknown component: {name}")
            wanted.add(name)
            stack.extend(self._components[name].depends_on)

        # Preserve registration order among independent components
        return self._topological([n for n in self._components if n in wanted])

    def _topological(self, names: list[str]) -> list[str]:
        subset = set(names)
        in_degree = {n: 0 for n in names}
        adj: dict[str, list[str]] = {n: [] for n in names}
        for n in names:
            for dep in self._components[n].depends_on:
                if dep in subset:
                    in_degree[n] += 1
                    adj[dep].append(n)

        queue = [n for n in names if in_degree[n] == 0]
        order: list[str] = []
        while queue:
            node = queue.pop(0)
            order.append(node)
            for successor in adj[node]:
                in_degree[successor] -= 1
                if in_degree[successor] == 0:
                    queue.append(successor)
        return order


def default_components() -> ComponentRegistry:
    """The components hostctl ships with."""
    from hostctl.components.coral import CoralComponent
    from hostctl.components.docker import DockerComponent
    from hostctl.components.nvidia import NvidiaComponent
    from hostctl.components.toolkit import ToolkitComponent

    registry = ComponentRegistry([
        CoralComponent(),
        NvidiaComponent(),
        DockerComponent(),
        ToolkitComponent(),
    ])
    errors = registry.validate()
    if errors:
        raise ValueError("; ".join(errors))
    return registry


__all__ = ["Component", "ComponentRegistry", "default_components"]
