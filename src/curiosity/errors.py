"""Exceptions raised by the curiosity engine."""


class CuriosityError(Exception):
    """Base class for engine errors the caller is expected to handle."""


class ConceptNotFound(CuriosityError):
    def __init__(self, name: str):
        super().__init__(f"Concept not found: {name}")
        self.name = name


class ClusterNotFound(CuriosityError):
    def __init__(self, cluster_id: str):
        super().__init__(f"Cluster not found: {cluster_id}")
        self.cluster_id = cluster_id


class TagNotFound(CuriosityError):
    def __init__(self, tag_id: str):
        super().__init__(f"Tag not found: {tag_id}")
        self.tag_id = tag_id


class DuplicateTagError(CuriosityError):
    def __init__(self, name: str):
        super().__init__(f"Tag already exists: {name}")
        self.name = name


class NoTagsAvailable(CuriosityError):
    """The tag catalog is empty. Seed tags before selecting."""

    def __init__(self):
        super().__init__("No tags available. Run 'curiosity tags seed' first.")


class DailySelectionNotFound(CuriosityError):
    def __init__(self, date: str):
        super().__init__(f"No daily tags to update for {date}")
        self.date = date
