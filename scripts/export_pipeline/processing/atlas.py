"""
Atlas page layout: binary-tree bin packing of sprite rectangles into fixed-size pages.
"""

from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple


@dataclass
class AtlasConfig:
    """Configuration for atlas page generation."""
    padding: int = 0
    power_of_two: bool = False
    max_size: tuple[int, int] = (2048, 2048)


@dataclass
class Rectangle:
    """Rectangle for atlas layout calculations."""
    x: int
    y: int
    width: int
    height: int

    @property
    def right(self) -> int:
        return self.x + self.width

    @property
    def bottom(self) -> int:
        return self.y + self.height

    @property
    def area(self) -> int:
        return self.width * self.height


@dataclass
class LayoutNode:
    """Node in the page layout tree for bin packing."""
    rect: Rectangle
    used: bool = False
    right: Optional['LayoutNode'] = None
    down: Optional['LayoutNode'] = None

    def find_node(self, width: int, height: int) -> Optional['LayoutNode']:
        """Find a free node that can fit the given dimensions, right branches first."""
        # Iterative: a page with thousands of small sprites grows a deep tree
        stack = [self]
        while stack:
            node = stack.pop()
            if node.used:
                if node.down:
                    stack.append(node.down)
                if node.right:
                    stack.append(node.right)
            elif width <= node.rect.width and height <= node.rect.height:
                return node
        return None

    def split_node(self, width: int, height: int) -> 'LayoutNode':
        """Occupy the top-left corner of this node and keep the rest as free nodes."""
        self.used = True

        if self.rect.width > width:
            self.right = LayoutNode(Rectangle(
                self.rect.x + width, self.rect.y,
                self.rect.width - width, self.rect.height
            ))

        if self.rect.height > height:
            self.down = LayoutNode(Rectangle(
                self.rect.x, self.rect.y + height,
                width, self.rect.height - height
            ))

        return self


@dataclass
class AtlasLayout:
    """Placement of named items on one atlas page."""
    width: int
    height: int
    positions: Dict[str, Rectangle] = field(default_factory=dict)
    efficiency: float = 0.0

    def add_item(self, name: str, rect: Rectangle) -> None:
        self.positions[name] = rect

    def calculate_efficiency(self, total_item_area: int) -> None:
        """Calculate layout efficiency (used area / total area)."""
        total_area = self.width * self.height
        self.efficiency = total_item_area / total_area if total_area > 0 else 0.0


@dataclass
class AtlasPage:
    """A page being filled: its free-space tree and the layout placed so far."""
    index: int
    root: LayoutNode
    layout: AtlasLayout

    def place(self, name: str, width: int, height: int, padding: int) -> bool:
        node = self.root.find_node(width + padding, height + padding)
        if node is None:
            return False
        node.split_node(width + padding, height + padding)
        self.layout.add_item(name, Rectangle(node.rect.x, node.rect.y, width, height))
        return True


class AtlasGenerationError(Exception):
    """Raised when atlas layout fails."""
    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class AtlasLayoutEngine:
    """Engine for multi-page packed layouts."""

    def __init__(self, config: AtlasConfig):
        self.config = config

    def fits_page(self, width: int, height: int) -> bool:
        max_width, max_height = self.config.max_size
        return (0 < width and 0 < height and
                width + self.config.padding <= max_width and
                height + self.config.padding <= max_height)

    def pack_pages(self, items: List[Tuple[str, int, int]]) -> List[AtlasLayout]:
        """
        Pack items into as few pages as the greedy heuristic manages.

        Items are sorted by decreasing area (ties by name, so layouts are reproducible)
        and placed in the first page with room; a new page opens when none has.
        Every page is trimmed to its used bounds.

        Args:
            items: List of (name, width, height) tuples

        Raises:
            AtlasGenerationError: If an item can never fit a page
        """
        for name, width, height in items:
            if not self.fits_page(width, height):
                raise AtlasGenerationError(
                    f"Item {name} ({width}x{height}) does not fit page size {self.config.max_size}"
                )

        sorted_items = sorted(items, key=lambda item: (-item[1] * item[2], item[0]))
        max_width, max_height = self.config.max_size
        pages: List[AtlasPage] = []

        for name, width, height in sorted_items:
            for page in pages:
                if page.place(name, width, height, self.config.padding):
                    break
            else:
                page = AtlasPage(
                    len(pages),
                    LayoutNode(Rectangle(0, 0, max_width, max_height)),
                    AtlasLayout(max_width, max_height),
                )
                page.place(name, width, height, self.config.padding)
                pages.append(page)

        return [self.optimize_atlas_size(page.layout) for page in pages]

    def optimize_atlas_size(self, layout: AtlasLayout) -> AtlasLayout:
        """Shrink a page to the bounds of its items."""
        if not layout.positions:
            return layout

        max_x = max(rect.right for rect in layout.positions.values())
        max_y = max(rect.bottom for rect in layout.positions.values())

        if self.config.power_of_two:
            max_x = self._next_power_of_two(max_x)
            max_y = self._next_power_of_two(max_y)

        optimized_width = min(max_x, layout.width)
        optimized_height = min(max_y, layout.height)

        total_item_area = sum(rect.area for rect in layout.positions.values())
        new_layout = AtlasLayout(optimized_width, optimized_height, layout.positions.copy())
        new_layout.calculate_efficiency(total_item_area)

        return new_layout

    def _next_power_of_two(self, n: int) -> int:
        """Find the next power of two greater than or equal to n."""
        if n <= 0:
            return 1

        if n & (n - 1) == 0:
            return n

        power = 1
        while power < n:
            power <<= 1

        return power
