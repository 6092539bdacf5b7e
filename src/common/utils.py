import logging as log
from io import BytesIO
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple
from PIL import Image, ImageDraw, ImageFont

from common.waste_types import lookup

CONFIDENCE_THRESHOLD = 0.5

COLOR_BIODEGRADABLE = (0, 128, 0)
COLOR_NON_BIODEGRADABLE = (255, 0, 0)
COLOR_TEXT = (0, 0, 0)
COLOR_BG = (255, 255, 255)


def image_size(image_bytes: bytes) -> Tuple[int, int]:
    with Image.open(BytesIO(image_bytes)) as img:
        return img.size


def box_corners(box: Any) -> Tuple[float, float, float, float]:
    """
    Accept both encodings the inference API uses:
    {"xmin":..,"ymin":..,"xmax":..,"ymax":..} or [xmin, ymin, xmax, ymax].
    """
    if isinstance(box, dict):
        return (
            float(box["xmin"]),
            float(box["ymin"]),
            float(box["xmax"]),
            float(box["ymax"]),
        )
    if isinstance(box, (list, tuple)) and len(box) >= 4:
        xmin, ymin, xmax, ymax = [float(v) for v in box[:4]]
        return xmin, ymin, xmax, ymax
    raise ValueError(f"Unsupported box encoding: {box!r}")


def to_percent(box: Any, W: int, H: int) -> List[float]:
    """
    Convert absolute pixel corners -> [x, y, width, height] in percent of W/H
    """
    if W <= 0 or H <= 0:
        raise ValueError("Image dimensions must be positive")
    xmin, ymin, xmax, ymax = box_corners(box)
    return [
        xmin / W * 100,
        ymin / H * 100,
        (xmax - xmin) / W * 100,
        (ymax - ymin) / H * 100,
    ]


def to_pixels(box: Sequence[float], W: int, H: int) -> Tuple[int, int, int, int]:
    """
    Convert [x, y, width, height] in percent -> pixel x1,y1,x2,y2 clamped to the image
    """
    x_pct, y_pct, w_pct, h_pct = [float(v) for v in box[:4]]
    x1 = int(round(x_pct / 100.0 * W))
    y1 = int(round(y_pct / 100.0 * H))
    x2 = int(round((x_pct + w_pct) / 100.0 * W))
    y2 = int(round((y_pct + h_pct) / 100.0 * H))
    x1, x2 = max(0, min(W - 1, min(x1, x2))), max(0, min(W - 1, max(x1, x2)))
    y1, y2 = max(0, min(H - 1, min(y1, y2))), max(0, min(H - 1, max(y1, y2)))
    return x1, y1, x2, y2


def parse_detections(
    raw: List[dict],
    W: int,
    H: int,
    table: Mapping[str, str],
    threshold: float = CONFIDENCE_THRESHOLD,
) -> List[Dict[str, Any]]:
    """
    Filter raw inference entries by score and map them to
    {label, confidence, box (percent), kind} dicts.
    Entries at or below the threshold, and malformed entries, are dropped.
    """
    parsed = []
    for d in raw or []:
        try:
            score = float(d["score"])
            label = str(d["label"])
            if score <= threshold:
                continue
            box = to_percent(d["box"], W, H)
        except (KeyError, TypeError, ValueError) as e:
            log.debug("Skipping malformed detection %r: %s", d, e)
            continue

        parsed.append(
            {
                "label": label,
                "confidence": min(score, 1.0),
                "box": box,
                "kind": lookup(table, label),
            }
        )
    return parsed


def _load_font(size: int = 20):
    try:
        return ImageFont.truetype("DejaVuSans-Bold.ttf", size=size)
    except OSError:
        return ImageFont.load_default()


def _text_size(draw: ImageDraw.ImageDraw, text: str, font) -> Tuple[int, int]:
    tb = draw.textbbox((0, 0), text, font=font)
    return tb[2] - tb[0], tb[3] - tb[1]


def annotate_image(
    image_bytes: bytes,
    detections: List[dict],
    line_width: int = 5,
    font_size: int = 20,
    fmt: str = "JPEG",
) -> bytes:
    """
    Draw one rectangle per detection (green for biodegradable, red otherwise)
    and a "label (type) 87.5%" tag above it. Returns the encoded image bytes.

    Each detection is a dict with label, confidence, box (percent) and type.
    """
    base = Image.open(BytesIO(image_bytes)).convert("RGB")
    W, H = base.size
    draw = ImageDraw.Draw(base)
    font = _load_font(font_size)

    for d in detections:
        box = d.get("box")
        if not box or len(box) < 4:
            continue
        x1, y1, x2, y2 = to_pixels(box, W, H)

        type_ = str(d.get("type") or "Non-biodegradable")
        color = (
            COLOR_BIODEGRADABLE
            if type_.lower() == "biodegradable"
            else COLOR_NON_BIODEGRADABLE
        )
        draw.rectangle([x1, y1, x2, y2], outline=color, width=line_width)

        conf: Optional[float] = d.get("confidence")
        pct = "" if conf is None else f" {float(conf) * 100:.1f}%"
        text = f"{d.get('label') or 'unknown'} ({type_}){pct}"

        tw, th = _text_size(draw, text, font)
        pad = 5
        by0 = y1 - th - 2 * pad
        if by0 < 0:  # no room above, put it inside the top edge
            by0 = y1
        draw.rectangle([x1, by0, x1 + tw + 2 * pad, by0 + th + 2 * pad], fill=COLOR_BG)
        draw.text((x1 + pad, by0 + pad), text, fill=COLOR_TEXT, font=font)

    with BytesIO() as out_buf:
        base.save(out_buf, format=fmt, quality=95)
        return out_buf.getvalue()
