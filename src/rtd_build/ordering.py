"""Build order for projects with name-based dependencies."""

from typing import Sequence

from rtd_build.config import ProjectTarget


def order_projects(projects: Sequence[ProjectTarget]) -> list[ProjectTarget]:
    """Sort projects so that each follows the projects it depends on.

    Traversal is depth-first, starting from each project in list order.
    Dependencies are looked up by ``name``; a name no project declares is
    treated as already satisfied. A project reached again while it is still
    on the traversal path (a cycle) is emitted at that point, so the result
    always contains every project exactly once.

    Args:
        projects: Projects in configuration order

    Returns:
        The same projects in build order
    """
    by_name: dict[str, int] = {}
    for index, project in enumerate(projects):
        if project.name:
            by_name[project.name] = index

    emitted: set[int] = set()
    on_path: set[int] = set()
    order: list[int] = []

    def visit(index: int) -> None:
        if index in emitted:
            return
        if index in on_path:
            # Cycle: emit here and stop descending
            emitted.add(index)
            order.append(index)
            return

        on_path.add(index)
        for dep in projects[index].dependencies:
            dep_index = by_name.get(dep)
            if dep_index is not None:
                visit(dep_index)
        on_path.discard(index)

        if index not in emitted:
            emitted.add(index)
            order.append(index)

    for index in range(len(projects)):
        visit(index)

    return [projects[i] for i in order]
