"""
Pydantic data models for the bundle manifest.

The manifest is a JSON document of the form:

{
  "_description": "...",
  "platform": "linux-x64",
  "bundles": {
    "level1/shared": {"hash": "...", "dependencies": []},
    "level1/env": {"hash": "...", "dependencies": ["level1/shared"]}
  }
}

Dependency lists keep their declared order; that order is the load order
used when a dependency closure is loaded.
"""

from typing import Dict, List, Optional, Set, Union

from pydantic import BaseModel, ConfigDict, Field, model_validator

from bundlespy.bundlespy_utils import group_of


class BundleEntry(BaseModel):
    """
    A single bundle listed in the manifest.
    """

    model_config = ConfigDict(extra="allow", populate_by_name=True, frozen=True)

    content_hash: str = Field(..., alias="hash", min_length=1, description="Opaque content hash")
    dependencies: List[str] = Field(
        default_factory=list, description="Direct dependencies, in load order"
    )


class BundleManifest(BaseModel):
    """
    Complete bundle manifest.

    Immutable once parsed. Validation guarantees a non-empty bundle set,
    dependencies that only reference listed bundles, and an acyclic
    dependency relation.
    """

    model_config = ConfigDict(extra="allow", populate_by_name=True, frozen=True)

    description: Optional[str] = Field(None, alias="_description")
    platform: Optional[str] = None
    bundles: Dict[str, BundleEntry]

    @model_validator(mode="after")
    def _check_consistency(self) -> "BundleManifest":
        if not self.bundles:
            raise ValueError("manifest lists no bundles")

        for name, entry in self.bundles.items():
            for dep in entry.dependencies:
                if dep not in self.bundles:
                    raise ValueError(f"bundle {name} depends on unknown bundle {dep}")
                if dep == name:
                    raise ValueError(f"bundle {name} depends on itself")

        self._check_acyclic()
        return self

    def _check_acyclic(self) -> None:
        # Iterative three-colour DFS so deep chains don't hit the recursion limit
        visiting: Set[str] = set()
        done: Set[str] = set()
        for start in self.bundles:
            if start in done:
                continue
            stack = [(start, iter(self.bundles[start].dependencies))]
            visiting.add(start)
            while stack:
                name, deps = stack[-1]
                dep = next(deps, None)
                if dep is None:
                    stack.pop()
                    visiting.discard(name)
                    done.add(name)
                elif dep in visiting:
                    raise ValueError(f"dependency cycle through bundle {dep}")
                elif dep not in done:
                    visiting.add(dep)
                    stack.append((dep, iter(self.bundles[dep].dependencies)))

    @classmethod
    def from_json(cls, payload: Union[str, bytes]) -> "BundleManifest":
        return cls.model_validate_json(payload)

    def bundle_names(self) -> List[str]:
        """
        All bundle names, in manifest order.
        """
        return list(self.bundles.keys())

    def has_bundle(self, name: str) -> bool:
        return name in self.bundles

    def hash_of(self, name: str) -> Optional[str]:
        entry = self.bundles.get(name)
        return entry.content_hash if entry else None

    def dependencies_of(self, name: str) -> Optional[List[str]]:
        """
        Direct dependencies of a bundle in declared order, or None if the
        bundle is not listed. A copy is returned so callers cannot mutate
        the manifest.
        """
        entry = self.bundles.get(name)
        return list(entry.dependencies) if entry else None

    def all_dependencies(self, name: str) -> Optional[List[str]]:
        """
        Transitive dependencies of a bundle, each listed once, dependencies
        before the bundles that need them. The bundle itself is excluded.
        """
        if name not in self.bundles:
            return None

        ordered: List[str] = []
        seen: Set[str] = {name}
        stack = [(name, iter(self.bundles[name].dependencies))]
        while stack:
            current, deps = stack[-1]
            dep = next(deps, None)
            if dep is None:
                stack.pop()
                if current != name:
                    ordered.append(current)
            elif dep not in seen:
                seen.add(dep)
                stack.append((dep, iter(self.bundles[dep].dependencies)))
        return ordered

    def bundles_in_group(self, group: str) -> List[str]:
        """
        Bundle names whose group prefix (the part before the first "/")
        equals the given group.
        """
        return [name for name in self.bundles if group_of(name) == group]
