"""
Connected-component labeling for the glyph segmentation engine.

Single raster pass over the ink mask with equivalence merging through a
disjoint-set forest, then a resolve pass that maps every provisional label to
the smallest label of its set.
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Tuple

import numpy as np

from .images import BACKGROUND, FOREGROUND, foreground_mask
from .pixels import PixelBuffer, Segment

logger = logging.getLogger(__name__)

UNLABELED = -1


# ============================================================================
# Disjoint Set
# ============================================================================

class DisjointSet:
    """
    Union-find over integer labels with union by rank and path compression.

    Each set also remembers its smallest member, which is the final label of
    every pixel in it.
    """

    def __init__(self):
        self._parent: List[int] = []
        self._rank: List[int] = []
        self._min: List[int] = []

    def __len__(self) -> int:
        return len(self._parent)

    def make_set(self) -> int:
        """Add a new singleton set and return its label."""
        label = len(self._parent)
        self._parent.append(label)
        self._rank.append(0)
        self._min.append(label)
        return label

    def find(self, label: int) -> int:
        root = label
        while self._parent[root] != root:
            root = self._parent[root]
        # Path compression
        while self._parent[label] != root:
            self._parent[label], label = root, self._parent[label]
        return root

    def union(self, a: int, b: int) -> int:
        root_a, root_b = self.find(a), self.find(b)
        if root_a == root_b:
            return root_a
        if self._rank[root_a] < self._rank[root_b]:
            root_a, root_b = root_b, root_a
        self._parent[root_b] = root_a
        if self._rank[root_a] == self._rank[root_b]:
            self._rank[root_a] += 1
        self._min[root_a] = min(self._min[root_a], self._min[root_b])
        return root_a

    def min_label(self, label: int) -> int:
        """Smallest label in the set containing ``label``."""
        return self._min[self.find(label)]

    def resolve_table(self) -> np.ndarray:
        """Array mapping every provisional label to its set minimum."""
        return np.array([self.min_label(i) for i in range(len(self))], dtype=np.int64)


# ============================================================================
# Data Classes
# ============================================================================

@dataclass
class ComponentResult:
    """Labels of every pixel plus the kept components."""
    labels: np.ndarray  # (height, width), UNLABELED for background
    components: List[Segment] = field(default_factory=list)

    @property
    def count(self) -> int:
        return len(self.components)

    def largest(self) -> Segment:
        """Component with the largest box area (first one on ties)."""
        best = self.components[0]
        for component in self.components[1:]:
            if component.area > best.area:
                best = component
        return best


# ============================================================================
# Labeling
# ============================================================================

def label_pixels(mask: np.ndarray) -> np.ndarray:
    """
    Label connected ink pixels of a boolean mask.

    Returns an int array where background is UNLABELED and every component
    carries the smallest provisional label assigned to any of its pixels.
    Provisional labels are opened in raster order, so component ids follow
    the raster position of each component's first pixel.
    """
    mask = np.asarray(mask, dtype=bool)
    height, width = mask.shape
    labels = np.full((height, width), UNLABELED, dtype=np.int64)
    sets = DisjointSet()
    make_set, union = sets.make_set, sets.union

    # Row label lists padded by one slot on each side, so x + 1 indexes column x
    previous = [UNLABELED] * (width + 2)
    for y in range(height):
        current = [UNLABELED] * (width + 2)
        for x in np.flatnonzero(mask[y]).tolist():
            i = x + 1
            # Visited neighbours in raster order: left, top, top-left, top-right
            neighbors = [
                n for n in (current[i - 1], previous[i], previous[i - 1], previous[i + 1])
                if n != UNLABELED
            ]
            if not neighbors:
                current[i] = make_set()
                continue

            smallest = min(neighbors)
            current[i] = smallest
            for neighbor in neighbors:
                if neighbor != smallest:
                    union(smallest, neighbor)

        labels[y] = current[1:-1]
        previous = current

    if len(sets) == 0:
        return labels

    table = sets.resolve_table()
    foreground = labels != UNLABELED
    labels[foreground] = table[labels[foreground]]
    return labels


def connected_components(
    buffer: PixelBuffer,
    min_size: int = 5
) -> ComponentResult:
    """
    Find connected ink components of a buffer.

    Args:
        buffer: Image to analyse; ink is luma < 128 (any binary buffer works)
        min_size: Components whose box is narrower or shorter than this are
            dropped

    Returns:
        ComponentResult with per-pixel labels and one Segment per kept
        component, ordered by label. Each segment's bitmap holds only that
        component's ink on a white background.
    """
    mask = foreground_mask(buffer)
    labels = label_pixels(mask)

    ys, xs = np.nonzero(labels != UNLABELED)
    unique_labels, inverse = np.unique(labels[ys, xs], return_inverse=True)
    n = len(unique_labels)

    # Per-label box extents in one pass over the ink pixels
    min_xs = np.full(n, labels.shape[1], dtype=np.int64)
    min_ys = np.full(n, labels.shape[0], dtype=np.int64)
    max_xs = np.full(n, -1, dtype=np.int64)
    max_ys = np.full(n, -1, dtype=np.int64)
    np.minimum.at(min_xs, inverse, xs)
    np.minimum.at(min_ys, inverse, ys)
    np.maximum.at(max_xs, inverse, xs)
    np.maximum.at(max_ys, inverse, ys)

    boxes: Dict[int, Tuple[int, int, int, int]] = {
        int(label): (int(min_xs[i]), int(min_ys[i]), int(max_xs[i]), int(max_ys[i]))
        for i, label in enumerate(unique_labels)
    }

    components: List[Segment] = []
    for label in sorted(boxes):
        min_x, min_y, max_x, max_y = boxes[label]
        width = max_x - min_x + 1
        height = max_y - min_y + 1
        if width < min_size or height < min_size:
            continue

        window = labels[min_y:max_y + 1, min_x:max_x + 1]
        bitmap = np.where(window == label, FOREGROUND, BACKGROUND).astype(np.uint8)
        components.append(Segment(
            x=min_x,
            y=min_y,
            width=width,
            height=height,
            pixels=PixelBuffer(bitmap[:, :, np.newaxis]),
        ))

    logger.debug(f"Found {len(boxes)} components, kept {len(components)}")
    return ComponentResult(labels=labels, components=components)
