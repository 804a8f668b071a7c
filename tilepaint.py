"""
tilepaint.py
============

A small, deterministic tile painter that renders procedural terrain and fog
layers to RGBA PNG. The PNG writer is built from scratch (CRC-32 table, chunk
framing, zlib payload) so output is byte-for-byte reproducible for a given
seed, and tiles can be embedded into JSON documents as base64 data URIs.

Key features
------------
- Seeded value noise: integer lattice hash, smoothstep-interpolated noise and
  multi-octave fractal summation (fbm), plus a vectorized numpy variant.
- Minimal PNG container: 8-bit RGBA, no interlace, exactly one IDAT chunk.
- Pixel painters are plain callables ``(x, y) -> (r, g, b, a)``; channel
  values are saturated into [0, 255] by the canvas.
- Pluggable compressor (anything with ``compress(data, level)``); zlib is the
  default.
- Grid documents: paint a CxR grid of seamless tiles and store them as data
  URIs keyed by ``"x,y"``.

Quick start
-----------
>>> from tilepaint import make_png, fbm
>>> png = make_png(64, 64, lambda x, y: (int(255 * fbm(x / 16, y / 16, 7)), 80, 40, 255))
>>> png[:8]
b'\\x89PNG\\r\\n\\x1a\\n'

Command line
------------
$ python tilepaint.py --out /tmp/forest.png --size 400x400 --painter terrain \
    --palette "#142d12,#2d5f28" --seed 42

$ python tilepaint.py --document /tmp/map.json --grid 3x3 --size 400x400 --seed 7

License: MIT
"""

import argparse
import base64
import json
import logging
import math
import struct
import zlib
from dataclasses import dataclass
from typing import Callable, Dict, Iterator, Mapping, Optional, Protocol, Sequence, Tuple

try:
    from PIL import ImageColor
except Exception as e:  # pragma: no cover
    raise SystemExit("This module requires Pillow. Try: pip install pillow") from e

try:
    import numpy as np
except Exception as e:  # pragma: no cover
    raise SystemExit("This module requires NumPy. Try: pip install numpy") from e

logger = logging.getLogger(__name__)

Pixel = Tuple[int, int, int, int]
PixelFn = Callable[[int, int], Pixel]


# ---------------------------- Utilities ------------------------------------

def hex_to_rgb(hex_color: str) -> Tuple[int, int, int]:
    """Convert '#RRGGBB' or 'RRGGBB' to (r,g,b). Handles shorthand '#RGB' too.

    Anything that is not hex is handed to Pillow, so CSS names like
    ``"black"`` work as well.
    """
    h = hex_color.strip().lstrip("#")
    if len(h) == 3:
        h = "".join(c*2 for c in h)
    if len(h) == 6:
        try:
            return (int(h[0:2], 16), int(h[2:4], 16), int(h[4:6], 16))
        except ValueError:
            pass
    try:
        return ImageColor.getrgb(hex_color.strip())[:3]
    except ValueError:
        raise ValueError(f"Invalid hex color: {hex_color!r}") from None


def lerp(a: float, b: float, t: float) -> float:
    return a + (b - a) * t


def clamp(v: float, lo: float, hi: float) -> float:
    return max(lo, min(hi, v))


def round_half_up(v: float) -> int:
    """Round to nearest integer, ties toward +inf (``round`` ties to even)."""
    return math.floor(v + 0.5)


# ---------------------------- CRC-32 ----------------------------------------

def _make_crc_table() -> Tuple[int, ...]:
    table = []
    for n in range(256):
        c = n
        for _ in range(8):
            if c & 1:
                c = 0xEDB88320 ^ (c >> 1)
            else:
                c >>= 1
        table.append(c)
    return tuple(table)


# Built once at import; never mutated.
CRC_TABLE = _make_crc_table()


def crc32(data: bytes, crc: int = 0) -> int:
    """IEEE CRC-32 of ``data``.

    Pass a previous result as ``crc`` to continue a running checksum, the same
    convention as :func:`zlib.crc32`.
    """
    c = crc ^ 0xFFFFFFFF
    table = CRC_TABLE
    for b in data:
        c = table[(c ^ b) & 0xFF] ^ (c >> 8)
    return c ^ 0xFFFFFFFF


# ---------------------------- Value noise -----------------------------------

_HASH_X = 374761393
_HASH_Y = 668265263
_HASH_SEED = 1234567891
_HASH_MIX = 1540483477
_U32 = 0xFFFFFFFF
_HASH_RANGE = 4294967296.0  # 2**32, keeps samples in [0, 1)


def lattice_hash(x: int, y: int, seed: int) -> float:
    """Pseudo-random value in [0, 1) for one integer lattice point."""
    h = (x * _HASH_X + y * _HASH_Y + seed * _HASH_SEED) & _U32
    h ^= h >> 13
    h = (h * _HASH_MIX) & _U32
    h ^= h >> 15
    return h / _HASH_RANGE


def value_noise(x: float, y: float, seed: int) -> float:
    """Smoothstep-interpolated value noise; equals ``lattice_hash`` on integers."""
    xi, yi = math.floor(x), math.floor(y)
    xf, yf = x - xi, y - yi
    v00 = lattice_hash(xi, yi, seed)
    v10 = lattice_hash(xi + 1, yi, seed)
    v01 = lattice_hash(xi, yi + 1, seed)
    v11 = lattice_hash(xi + 1, yi + 1, seed)
    sx = xf * xf * (3 - 2 * xf)
    sy = yf * yf * (3 - 2 * yf)
    return lerp(lerp(v00, v10, sx), lerp(v01, v11, sx), sy)


def fbm(x: float, y: float, seed: int, octaves: int = 4) -> float:
    """Fractal sum of ``octaves`` noise layers, normalized back into [0, 1).

    Each octave doubles the frequency, halves the amplitude (starting at 0.5)
    and uses ``seed + i`` so the layers are decorrelated.
    """
    if octaves < 1:
        raise ValueError(f"octaves must be >= 1, got {octaves}")
    v = 0.0
    amp = 0.5
    freq = 1.0
    total = 0.0
    for i in range(octaves):
        v += value_noise(x * freq, y * freq, seed + i) * amp
        total += amp
        amp *= 0.5
        freq *= 2
    return v / total


def _lattice_hash_array(xi: np.ndarray, yi: np.ndarray, seed: int) -> np.ndarray:
    # uint64 arithmetic wraps mod 2**64, so the low 32 bits match the scalar path
    xs = np.asarray(xi).astype(np.int64).astype(np.uint64)
    ys = np.asarray(yi).astype(np.int64).astype(np.uint64)
    mask = np.uint64(_U32)
    with np.errstate(over="ignore"):
        h = (xs * np.uint64(_HASH_X) + ys * np.uint64(_HASH_Y)
             + np.uint64((seed * _HASH_SEED) & _U32)) & mask
        h = h ^ (h >> np.uint64(13))
        h = (h * np.uint64(_HASH_MIX)) & mask
        h = h ^ (h >> np.uint64(15))
    return np.asarray(h).astype(np.float64) / _HASH_RANGE


def _value_noise_array(x: np.ndarray, y: np.ndarray, seed: int) -> np.ndarray:
    xi, yi = np.floor(x), np.floor(y)
    xf, yf = x - xi, y - yi
    v00 = _lattice_hash_array(xi, yi, seed)
    v10 = _lattice_hash_array(xi + 1, yi, seed)
    v01 = _lattice_hash_array(xi, yi + 1, seed)
    v11 = _lattice_hash_array(xi + 1, yi + 1, seed)
    sx = xf * xf * (3 - 2 * xf)
    sy = yf * yf * (3 - 2 * yf)
    return lerp(lerp(v00, v10, sx), lerp(v01, v11, sx), sy)


def fbm_grid(xs, ys, seed: int, octaves: int = 4) -> np.ndarray:
    """Vectorized :func:`fbm` over broadcast coordinate arrays.

    Every element equals the scalar ``fbm`` at the same coordinates, so a tile
    painted from a precomputed grid is identical to one painted pixel by pixel.
    Standalone API for callers that want a whole noise field at once; the
    built-in painters stay per-pixel and use :func:`fbm`.
    """
    if octaves < 1:
        raise ValueError(f"octaves must be >= 1, got {octaves}")
    x, y = np.broadcast_arrays(np.asarray(xs, dtype=np.float64),
                               np.asarray(ys, dtype=np.float64))
    v = np.zeros(x.shape, dtype=np.float64)
    amp = 0.5
    freq = 1.0
    total = 0.0
    for i in range(octaves):
        v += _value_noise_array(x * freq, y * freq, seed + i) * amp
        total += amp
        amp *= 0.5
        freq *= 2
    return v / total


# ---------------------------- Raster canvas ---------------------------------

class InvalidGeometryError(ValueError):
    """Width or height outside what a PNG can hold."""


_MAX_DIMENSION = 0x7FFFFFFF


def check_geometry(width: int, height: int) -> None:
    if width <= 0 or height <= 0:
        raise InvalidGeometryError(f"Image size must be positive, got {width}x{height}")
    if width > _MAX_DIMENSION or height > _MAX_DIMENSION:
        raise InvalidGeometryError(f"Image size exceeds PNG limits: {width}x{height}")


def scanline_length(width: int, height: int) -> int:
    """Byte length of unfiltered RGBA scanlines, one filter byte per row."""
    return height * (1 + width * 4)


def render_scanlines(width: int, height: int, pixel_fn: PixelFn) -> bytes:
    """Evaluate ``pixel_fn`` over the grid and lay out raw PNG scanlines.

    Rows are visited top to bottom, left to right. Channel values are
    saturated into [0, 255]; float channels are rounded half-up first.
    """
    check_geometry(width, height)
    pixels = [pixel_fn(x, y) for y in range(height) for x in range(width)]
    arr = np.asarray(pixels, dtype=np.float64)
    if arr.shape != (width * height, 4):
        raise ValueError(f"Pixel function must return 4 channels, got array of shape {arr.shape}")
    if not np.isfinite(arr).all():
        raise ValueError("Pixel function returned a NaN or infinite channel value")
    arr = np.clip(np.floor(arr + 0.5), 0, 255).astype(np.uint8)

    rows = np.zeros((height, 1 + width * 4), dtype=np.uint8)  # column 0: filter type none
    rows[:, 1:] = arr.reshape(height, width * 4)
    return rows.tobytes()


# ---------------------------- PNG container ---------------------------------

PNG_SIGNATURE = b"\x89PNG\r\n\x1a\n"

BIT_DEPTH = 8
COLOR_TYPE_RGBA = 6


class Compressor(Protocol):
    def compress(self, data: bytes, level: int) -> bytes:
        ...


class ZlibCompressor:
    """Default compressor: a zlib-wrapped deflate stream."""

    def compress(self, data: bytes, level: int) -> bytes:
        return zlib.compress(data, level)


@dataclass(frozen=True)
class Chunk:
    type: bytes
    data: bytes = b""

    def __post_init__(self):
        if not isinstance(self.type, bytes) or len(self.type) != 4 or not self.type.isalpha():
            raise ValueError(f"Chunk type must be 4 ASCII letters, got {self.type!r}")

    @property
    def crc(self) -> int:
        return crc32(self.data, crc32(self.type))

    def serialize(self) -> bytes:
        """[length][type][data][crc], big-endian."""
        return struct.pack(">I", len(self.data)) + self.type + self.data + struct.pack(">I", self.crc)


def ihdr_payload(width: int, height: int) -> bytes:
    # depth, color type, compression, filter, interlace
    return struct.pack(">IIBBBBB", width, height, BIT_DEPTH, COLOR_TYPE_RGBA, 0, 0, 0)


def encode(
    width: int,
    height: int,
    raw: bytes,
    compressor: Optional[Compressor] = None,
    level: int = 9,
) -> bytes:
    """Wrap raw RGBA scanlines into a complete PNG file.

    The result is signature + IHDR + IDAT + IEND, returned as one buffer.
    Errors raised by ``compressor`` propagate unchanged.
    """
    check_geometry(width, height)
    expected = scanline_length(width, height)
    if len(raw) != expected:
        raise ValueError(f"Raw scanlines for {width}x{height} must be {expected} bytes, got {len(raw)}")
    compressor = compressor or ZlibCompressor()

    compressed = compressor.compress(bytes(raw), level)
    chunks = (
        Chunk(b"IHDR", ihdr_payload(width, height)),
        Chunk(b"IDAT", bytes(compressed)),
        Chunk(b"IEND"),
    )
    png = PNG_SIGNATURE + b"".join(c.serialize() for c in chunks)
    logger.debug(f"Encoded {width}x{height} PNG: {len(raw)} raw -> {len(compressed)} compressed, {len(png)} total bytes")
    return png


def make_png(
    width: int,
    height: int,
    pixel_fn: PixelFn,
    compressor: Optional[Compressor] = None,
    level: int = 9,
) -> bytes:
    """Paint and encode in one call."""
    raw = render_scanlines(width, height, pixel_fn)
    return encode(width, height, raw, compressor=compressor, level=level)


def iter_chunks(png: bytes) -> Iterator[Chunk]:
    """Walk the chunks of a PNG buffer, checking lengths and CRCs."""
    if png[:8] != PNG_SIGNATURE:
        raise ValueError("Not a PNG: bad signature")
    pos = 8
    while pos < len(png):
        if pos + 8 > len(png):
            raise ValueError(f"Truncated chunk header at offset {pos}")
        length, ctype = struct.unpack(">I4s", png[pos:pos + 8])
        end = pos + 8 + length
        if end + 4 > len(png):
            raise ValueError(f"Truncated {ctype!r} chunk at offset {pos}")
        chunk = Chunk(ctype, png[pos + 8:end])
        (stored,) = struct.unpack(">I", png[end:end + 4])
        if stored != chunk.crc:
            raise ValueError(f"CRC mismatch in {ctype!r} chunk: stored {stored:#010x}, computed {chunk.crc:#010x}")
        yield chunk
        pos = end + 4


def to_data_uri(png: bytes) -> str:
    return "data:image/png;base64," + base64.b64encode(png).decode("ascii")


# ---------------------------- Painters --------------------------------------

@dataclass(frozen=True)
class TerrainPainter:
    """fbm ground blended between two colours, with optional patches and a
    slight darkening toward the tile edges.

    ``origin`` offsets the noise domain in pixels so neighbouring tiles of a
    grid continue each other seamlessly.
    """
    low: Tuple[int, int, int]
    high: Tuple[int, int, int]
    seed: int
    width: int
    height: int
    scale: float = 80.0
    octaves: int = 4
    origin: Tuple[int, int] = (0, 0)
    patch_seed: Optional[int] = None
    patch_threshold: float = 0.62
    patch_shift: Tuple[int, int, int] = (-5, 10, -5)
    edge_fade: int = 40

    def __call__(self, x: int, y: int) -> Pixel:
        nx = (x + self.origin[0]) / self.scale
        ny = (y + self.origin[1]) / self.scale
        n = fbm(nx, ny, self.seed, self.octaves)
        rgb = [round_half_up(lerp(lo, hi, n)) for lo, hi in zip(self.low, self.high)]

        if self.patch_seed is not None:
            n2 = fbm(nx * 2 + 7.3, ny * 2 + 1.8, self.patch_seed, self.octaves)
            if n2 > self.patch_threshold:
                rgb = [c + d for c, d in zip(rgb, self.patch_shift)]

        if self.edge_fade > 0:
            edge = min(x, self.width - 1 - x, y, self.height - 1 - y) / self.edge_fade
            k = 0.92 + 0.08 * clamp(edge, 0, 1)
            rgb = [round_half_up(c * k) for c in rgb]

        return (rgb[0], rgb[1], rgb[2], 255)


@dataclass(frozen=True)
class FogPainter:
    """Opaque black fog; ``reveal`` = (x0, y0, x1, y1), inclusive, is cleared.

    With ``feather`` > 0 the revealed area fades back to opaque over that many
    pixels inside its border. ``reveal`` is given in document pixels; ``origin``
    places this tile within the document, so one box can span several cells.
    """
    reveal: Optional[Tuple[int, int, int, int]] = None
    feather: int = 0
    origin: Tuple[int, int] = (0, 0)

    def __call__(self, x: int, y: int) -> Pixel:
        if self.reveal is not None:
            x, y = x + self.origin[0], y + self.origin[1]
            x0, y0, x1, y1 = self.reveal
            if x0 <= x <= x1 and y0 <= y <= y1:
                if self.feather <= 0:
                    return (0, 0, 0, 0)
                edge = clamp(min(x - x0, x1 - x, y - y0, y1 - y) / self.feather, 0, 1)
                return (0, 0, 0, round_half_up((1 - edge) * 255))
        return (0, 0, 0, 255)


# ---------------------------- High-level API --------------------------------

DEFAULT_PALETTE = ("#142d12", "#2d5f28")


@dataclass
class TileArgs:
    out_path: str
    width: int
    height: int
    painter: str = "terrain"
    seed: int = 0
    octaves: int = 4
    scale: float = 80.0
    palette: Sequence[str] = DEFAULT_PALETTE
    patches: bool = False
    reveal: Optional[Tuple[int, int, int, int]] = None
    feather: int = 0
    level: int = 9
    origin: Tuple[int, int] = (0, 0)


def _terrain_from_args(args: TileArgs) -> PixelFn:
    if len(args.palette) < 2:
        raise ValueError("Terrain painter needs two palette colors (low,high)")
    return TerrainPainter(
        low=hex_to_rgb(args.palette[0]),
        high=hex_to_rgb(args.palette[1]),
        seed=args.seed,
        width=args.width,
        height=args.height,
        scale=args.scale,
        octaves=args.octaves,
        origin=args.origin,
        patch_seed=args.seed + 57 if args.patches else None,
    )


def _fog_from_args(args: TileArgs) -> PixelFn:
    return FogPainter(reveal=args.reveal, feather=args.feather, origin=args.origin)


PAINTERS: Dict[str, Callable[[TileArgs], PixelFn]] = {
    "terrain": _terrain_from_args,
    "fog": _fog_from_args,
}


def paint_tile(args: TileArgs) -> bytes:
    """Build the painter named by ``args.painter`` and return PNG bytes."""
    factory = PAINTERS.get(args.painter)
    if not factory:
        raise ValueError(f"Unknown painter: {args.painter!r}. Choose from {list(PAINTERS)}")
    if args.octaves < 1:
        raise ValueError(f"octaves must be >= 1, got {args.octaves}")
    pixel_fn = factory(args)
    return make_png(args.width, args.height, pixel_fn, level=args.level)


def generate_tile(
    out_path: str,
    width: int,
    height: int,
    painter: str = "terrain",
    seed: int = 0,
    octaves: int = 4,
    scale: float = 80.0,
    palette: Sequence[str] = DEFAULT_PALETTE,
    patches: bool = False,
    reveal: Optional[Tuple[int, int, int, int]] = None,
    feather: int = 0,
    level: int = 9,
) -> str:
    """High-level convenience. Returns the out_path after saving."""
    args = TileArgs(
        out_path=out_path, width=width, height=height, painter=painter,
        seed=seed, octaves=octaves, scale=scale, palette=list(palette),
        patches=patches, reveal=reveal, feather=feather, level=level,
    )
    png = paint_tile(args)
    with open(out_path, "wb") as f:
        f.write(png)
    logger.info(f"Wrote {width}x{height} {painter} tile to {out_path} ({len(png)} bytes)")
    return out_path


def build_grid_document(cells: Mapping[Tuple[int, int], bytes], name: str = "tilepaint") -> dict:
    """JSON-ready document holding each cell's PNG as a data URI under "x,y"."""
    return {
        "version": "1.0",
        "name": name,
        "gridCells": {f"{x},{y}": to_data_uri(png) for (x, y), png in sorted(cells.items(), key=lambda kv: (kv[0][1], kv[0][0]))},
    }


def generate_grid(
    out_path: str,
    columns: int,
    rows: int,
    width: int,
    height: int,
    painter: str = "terrain",
    seed: int = 0,
    octaves: int = 4,
    scale: float = 80.0,
    palette: Sequence[str] = DEFAULT_PALETTE,
    patches: bool = False,
    reveal: Optional[Tuple[int, int, int, int]] = None,
    feather: int = 0,
    level: int = 9,
    name: str = "tilepaint",
) -> str:
    """Paint a columns x rows grid of tiles into one JSON document.

    Cells share one pixel space, offset by their grid position: terrain noise
    continues across cells and a fog ``reveal`` box is in document pixels.
    """
    if columns <= 0 or rows <= 0:
        raise InvalidGeometryError(f"Grid size must be positive, got {columns}x{rows}")
    cells = {}
    for cy in range(rows):
        for cx in range(columns):
            args = TileArgs(
                out_path=out_path, width=width, height=height, painter=painter,
                seed=seed, octaves=octaves, scale=scale, palette=list(palette),
                patches=patches, reveal=reveal, feather=feather, level=level,
                origin=(cx * width, cy * height),
            )
            logger.info(f"Painting cell {cx},{cy} ({cy * columns + cx + 1}/{columns * rows})")
            cells[(cx, cy)] = paint_tile(args)

    doc = build_grid_document(cells, name=name)
    with open(out_path, "w") as f:
        json.dump(doc, f, indent=2)
    logger.info(f"Wrote {columns}x{rows} grid document to {out_path}")
    return out_path


# ---------------------------- CLI -------------------------------------------

def parse_size(s: str) -> Tuple[int, int]:
    if "x" not in s.lower():
        raise argparse.ArgumentTypeError("Size must be like 400x400")
    a, b = s.lower().split("x", 1)
    try:
        return (int(a), int(b))
    except ValueError:
        raise argparse.ArgumentTypeError(f"Size must be like 400x400, got {s!r}") from None


def parse_box(s: str) -> Tuple[int, int, int, int]:
    parts = [p.strip() for p in s.split(",")]
    if len(parts) != 4:
        raise argparse.ArgumentTypeError("Reveal box must be x0,y0,x1,y1")
    try:
        x0, y0, x1, y1 = (int(p) for p in parts)
    except ValueError:
        raise argparse.ArgumentTypeError(f"Reveal box must be integers, got {s!r}") from None
    return (x0, y0, x1, y1)


def main(argv: Optional[Sequence[str]] = None) -> int:
    ap = argparse.ArgumentParser(description="Paint procedural RGBA tiles to PNG")
    target = ap.add_mutually_exclusive_group(required=True)
    target.add_argument("--out", help="Output PNG path")
    target.add_argument("--document", help="Output JSON grid document path (use with --grid)")
    ap.add_argument("--size", type=parse_size, default=(400, 400), help="WIDTHxHEIGHT per tile (e.g., 400x400)")
    ap.add_argument("--grid", type=parse_size, default=(1, 1), help="COLUMNSxROWS of tiles for --document")
    ap.add_argument("--painter", default="terrain", choices=sorted(PAINTERS.keys()))
    ap.add_argument("--palette", default=",".join(DEFAULT_PALETTE), help="Comma-separated low,high colors for terrain")
    ap.add_argument("--seed", type=int, default=0)
    ap.add_argument("--octaves", type=int, default=4)
    ap.add_argument("--scale", type=float, default=80.0, help="Noise feature size in pixels")
    ap.add_argument("--patches", action="store_true", help="Overlay a second noise layer as patches")
    ap.add_argument("--reveal", type=parse_box, default=None, help="Fog: x0,y0,x1,y1 box to clear")
    ap.add_argument("--feather", type=int, default=0, help="Fog: feather width of the revealed box")
    ap.add_argument("--level", type=int, default=9, choices=range(0, 10), metavar="0-9", help="zlib compression level")
    ap.add_argument("--name", default="tilepaint", help="Document name for --document")
    ap.add_argument("-v", "--verbose", action="store_true")
    args = ap.parse_args(argv)

    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.WARNING,
                        format="%(levelname)s %(name)s: %(message)s")

    width, height = args.size
    palette = [c.strip() for c in args.palette.split(",") if c.strip()]
    if args.octaves < 1:
        ap.error("--octaves must be >= 1")

    try:
        if args.document:
            columns, rows = args.grid
            out = generate_grid(
                out_path=args.document, columns=columns, rows=rows,
                width=width, height=height, painter=args.painter, seed=args.seed,
                octaves=args.octaves, scale=args.scale, palette=palette,
                patches=args.patches, reveal=args.reveal, feather=args.feather,
                level=args.level, name=args.name,
            )
        else:
            out = generate_tile(
                out_path=args.out, width=width, height=height,
                painter=args.painter, seed=args.seed, octaves=args.octaves,
                scale=args.scale, palette=palette, patches=args.patches,
                reveal=args.reveal, feather=args.feather, level=args.level,
            )
    except ValueError as e:
        ap.error(str(e))
    print(out)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
