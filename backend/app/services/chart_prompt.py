"""
Chart prompt composer.

Outbound: builds the instruction sent to the AI for a parsed series.
Inbound: validates an AI reply and fills in the house style, or builds the
same style of config locally when there is no AI reply to use.
"""
import copy
import json
import logging
import re
from typing import Any

from app.exceptions import PromptValidationError
from app.schemas.series import ParsedSeries

logger = logging.getLogger(__name__)

PALETTE = ["#3B82F6", "#8B5CF6", "#EC4899", "#F59E0B", "#10B981", "#F97316", "#6366F1", "#14B8A6"]
CIRCULAR_TYPES = ("pie", "doughnut", "polarArea")

TITLE_COLOR = "#1E293B"
TICK_COLOR = "#64748B"
GRID_COLOR = "rgba(0,0,0,0.05)"

QUALITY_CHECKLIST = """
CHART QUALITY REQUIREMENTS (MUST FOLLOW):
1. LABELS: Clear, readable, not truncated. Capitalize first letter.
2. COLORS: Use this palette: ['#3B82F6','#8B5CF6','#EC4899','#F59E0B','#10B981','#F97316','#6366F1','#14B8A6']
3. LEGEND: Position 'right' for pie/doughnut, 'top' for others. Hide if single dataset.
4. RESPONSIVE: Set responsive:true, maintainAspectRatio:false
5. NUMBERS: Format large numbers (1000→1K). Use 2 decimal places max.
6. TITLE: Always include descriptive title with font size 16, weight 600.
7. GRIDLINES: Show subtle gridlines (color: 'rgba(0,0,0,0.05)') on Y-axis only.
8. TOOLTIPS: Dark background (rgba(15,23,42,0.9)), white text, rounded corners.
9. ANIMATION: Use duration:750, easing:'easeOutQuart'
10. SPACING: Add padding {top:10, right:20, bottom:10, left:10}
"""

CHART_TYPE_SPECS = {
    "bar": """
BAR CHART SPECIFICS:
- borderRadius: 6 for rounded bars
- borderWidth: 0 (no border)
- Single color for single dataset, array for comparison
- X-axis: no grid, Y-axis: subtle grid
- beginAtZero: true on Y-axis
""",
    "line": """
LINE CHART SPECIFICS:
- tension: 0.4 for smooth curves
- fill: true with 20% opacity background
- borderWidth: 3
- pointRadius: 4, pointHoverRadius: 6
- pointBackgroundColor: '#ffffff'
- pointBorderWidth: 2
""",
    "pie": """
PIE CHART SPECIFICS:
- Use array of colors from palette
- borderColor: '#ffffff', borderWidth: 2
- Legend position: 'right'
- No scales needed
""",
    "doughnut": """
DOUGHNUT CHART SPECIFICS:
- cutout: '60%'
- Use array of colors from palette
- borderColor: '#ffffff', borderWidth: 2
- Legend position: 'right'
- No scales needed
""",
    "scatter": """
SCATTER CHART SPECIFICS:
- pointRadius: 6
- pointHoverRadius: 8
- Use rgba colors with 0.7 opacity
- Show both X and Y axis labels
""",
    "radar": """
RADAR CHART SPECIFICS:
- fill: true with 30% opacity
- borderWidth: 2
- pointRadius: 4
- Scale with angleLines and grid
""",
}

CHART_SYSTEM_PROMPT = (
    "You are a Chart.js expert. You answer with a single valid JSON chart "
    "configuration and nothing else: no markdown, no explanation."
)

ANALYSIS_SYSTEM_PROMPT = (
    "You are a data analyst. Answer with a single valid JSON object with the keys "
    '"summary", "insights", "recommendations" and "visualizations". No markdown.'
)

ANALYSIS_FIELDS = ("summary", "insights", "recommendations", "visualizations")

FENCE_OPEN = re.compile(r"^```(?:json)?\n?")
FENCE_CLOSE = re.compile(r"\n?```$")

TIME_LABELS = re.compile(r"jan|feb|mar|apr|q1|q2|q3|q4|2023|2024|2025|month|week")
CATEGORY_LABELS = re.compile(r"product|item|category|type")
REGION_LABELS = re.compile(r"north|south|east|west|region|country")

TOOLTIP_DEFAULTS = {
    "backgroundColor": "rgba(15, 23, 42, 0.9)",
    "titleColor": "#ffffff",
    "bodyColor": "#CBD5E1",
    "cornerRadius": 8,
    "padding": 12,
}
ANIMATION_DEFAULTS = {"duration": 750, "easing": "easeOutQuart"}
LAYOUT_DEFAULTS = {"padding": {"top": 10, "right": 20, "bottom": 10, "left": 10}}
X_SCALE_DEFAULTS = {
    "grid": {"display": False},
    "ticks": {"color": TICK_COLOR, "font": {"size": 11}},
    "border": {"display": False},
}
Y_SCALE_DEFAULTS = {
    "beginAtZero": True,
    "grid": {"color": GRID_COLOR},
    "ticks": {"color": TICK_COLOR, "font": {"size": 11}},
    "border": {"display": False},
}


def _overlay(defaults: dict, current: Any) -> dict:
    """Defaults first, then whatever the config already had."""
    merged = copy.deepcopy(defaults)
    if isinstance(current, dict):
        merged.update(current)
    return merged


def _section(parent: dict, key: str) -> dict:
    if not isinstance(parent.get(key), dict):
        parent[key] = {}
    return parent[key]


def _plain_number(value: float) -> int | float:
    return int(value) if float(value).is_integer() else value


def smart_title(labels: list[str], chart_type: str) -> str:
    """Guess a chart title from what the labels look like."""
    text = " ".join(str(label) for label in labels).lower()

    if TIME_LABELS.search(text):
        return "Trend Over Time" if chart_type == "line" else "Performance by Period"
    if CATEGORY_LABELS.search(text):
        return "Performance by Category"
    if REGION_LABELS.search(text):
        return "Regional Comparison"
    if chart_type in ("pie", "doughnut"):
        return "Distribution Breakdown"
    return "Data Comparison"


def build_prompt(series: ParsedSeries, chart_type: str = "bar", user_prompt: str = "") -> str:
    """Deterministic instruction for turning a parsed series into a chart config."""
    data_points = []
    for label, value in zip(series.labels, series.data):
        value = _plain_number(value)
        data_points.append({
            "label": label,
            "value": value,
            "formatted": f"{value}%" if series.is_percentage else value,
        })

    chart_spec = CHART_TYPE_SPECS.get(chart_type, CHART_TYPE_SPECS["bar"])
    title = series.title or smart_title(series.labels, chart_type)

    prompt = f"""
You are a Chart.js expert. Generate a production-ready Chart.js configuration.

USER REQUEST: {user_prompt or 'Create a chart from the provided data'}

STRUCTURED DATA:
{json.dumps(data_points, indent=2, ensure_ascii=False)}

CHART TYPE: {chart_type}
SUGGESTED TITLE: {title}

{QUALITY_CHECKLIST}

{chart_spec}

RESPONSE FORMAT:
Return ONLY valid JSON (no markdown, no explanation). Structure:
{{
  "type": "{chart_type}",
  "data": {{
    "labels": [...],
    "datasets": [{{ "label": "...", "data": [...], "backgroundColor": ..., ... }}]
  }},
  "options": {{
    "responsive": true,
    "maintainAspectRatio": false,
    "plugins": {{ "title": {{...}}, "legend": {{...}}, "tooltip": {{...}} }},
    "scales": {{...}},
    "animation": {{...}}
  }}
}}

Generate the complete Chart.js config now:
"""
    return prompt.strip()


def strip_code_fences(text: str) -> str:
    cleaned = text.strip()
    if cleaned.startswith("```"):
        cleaned = FENCE_CLOSE.sub("", FENCE_OPEN.sub("", cleaned))
    return cleaned.strip()


def _load_json_object(text: str) -> dict:
    if not isinstance(text, str) or not text.strip():
        raise PromptValidationError("Empty AI response")
    try:
        value = json.loads(strip_code_fences(text))
    except ValueError as e:
        raise PromptValidationError(f"AI response is not valid JSON: {e}")
    if not isinstance(value, dict):
        raise PromptValidationError(
            f"AI response must be a JSON object, got {type(value).__name__}"
        )
    return value


def parse_ai_response(text: str) -> dict:
    """
    Validate an AI chart reply and return the enhanced config.

    Raises:
        PromptValidationError: reply is not JSON or lacks `type` / `data`
    """
    config = _load_json_object(text)
    # Template replies wrap the chart as {"config": {...}, "metadata": {...}}
    if isinstance(config.get("config"), dict) and "type" not in config:
        config = config["config"]
    if not config.get("type") or not config.get("data"):
        raise PromptValidationError("Invalid config: missing type or data")
    logger.info(f"AI chart config validated: type={config['type']}")
    return enhance_config(config)


def parse_analysis_response(text: str) -> dict:
    """
    Validate an AI analysis reply.

    Raises:
        PromptValidationError: reply is not JSON or lacks a required field
    """
    analysis = _load_json_object(text)
    missing = [field for field in ANALYSIS_FIELDS if field not in analysis]
    if missing:
        raise PromptValidationError(f"Analysis response missing fields: {missing}")
    return analysis


def enhance_config(config: dict) -> dict:
    """
    Fill in the house style around a chart config.

    Returns a new dict; the input is left untouched. Applying it to its own
    output changes nothing.
    """
    config = copy.deepcopy(config)
    chart_type = config.get("type")
    is_circular = chart_type in CIRCULAR_TYPES
    data = config.get("data") if isinstance(config.get("data"), dict) else {}
    labels = data.get("labels") or []

    options = _section(config, "options")
    options["responsive"] = True
    options["maintainAspectRatio"] = False

    plugins = _section(options, "plugins")
    if not plugins.get("title"):
        plugins["title"] = {
            "display": True,
            "text": smart_title(labels, chart_type),
            "font": {"size": 16, "weight": "600"},
            "color": TITLE_COLOR,
        }

    plugins["tooltip"] = _overlay(TOOLTIP_DEFAULTS, plugins.get("tooltip"))

    if is_circular:
        legend = _overlay({"display": True}, plugins.get("legend"))
        legend["position"] = "right"
        legend["labels"] = _overlay({"padding": 15}, legend.get("labels"))
        legend["labels"]["usePointStyle"] = True
        plugins["legend"] = legend
    else:
        scales = _section(options, "scales")
        scales["x"] = _overlay(X_SCALE_DEFAULTS, scales.get("x"))
        scales["y"] = _overlay(Y_SCALE_DEFAULTS, scales.get("y"))

    options["animation"] = _overlay(ANIMATION_DEFAULTS, options.get("animation"))
    options["layout"] = _overlay(LAYOUT_DEFAULTS, options.get("layout"))

    for i, dataset in enumerate(data.get("datasets") or []):
        if not isinstance(dataset, dict):
            continue
        color = PALETTE[i % len(PALETTE)]
        if not dataset.get("backgroundColor"):
            if is_circular:
                count = len(labels) or len(PALETTE)
                dataset["backgroundColor"] = [PALETTE[j % len(PALETTE)] for j in range(count)]
            else:
                dataset["backgroundColor"] = color
        if not dataset.get("borderColor"):
            dataset["borderColor"] = "#ffffff" if is_circular else color

    if chart_type == "doughnut" and not options.get("cutout"):
        options["cutout"] = "60%"

    return config


def create_fallback_config(series: ParsedSeries, chart_type: str = "bar") -> dict:
    """Chart config built locally from the parsed series."""
    labels, data = list(series.labels), list(series.data)
    is_circular = chart_type in CIRCULAR_TYPES
    is_line = chart_type == "line"
    primary = PALETTE[0]

    if is_line:
        background = f"{primary}33"
    elif is_circular:
        background = [PALETTE[i % len(PALETTE)] for i in range(len(data))]
    else:
        background = primary

    dataset = {
        "label": series.title or "Data",
        "data": data,
        "backgroundColor": background,
        "borderColor": "#ffffff" if is_circular else primary,
        "borderWidth": 2 if is_circular else (3 if is_line else 0),
        "borderRadius": 6 if chart_type == "bar" else 0,
        "tension": 0.4,
        "fill": is_line,
        "pointRadius": 4 if is_line else 0,
        "pointBackgroundColor": "#ffffff",
        "pointBorderColor": primary,
        "pointBorderWidth": 2,
    }

    config = {
        "type": chart_type,
        "data": {"labels": labels, "datasets": [dataset]},
        "options": {
            "responsive": True,
            "maintainAspectRatio": False,
            "layout": copy.deepcopy(LAYOUT_DEFAULTS),
            "plugins": {
                "title": {
                    "display": True,
                    "text": series.title or smart_title(labels, chart_type),
                    "font": {"size": 16, "weight": "600"},
                    "color": TITLE_COLOR,
                    "padding": {"bottom": 20},
                },
                "legend": {
                    "display": is_circular,
                    "position": "right" if is_circular else "top",
                    "labels": {"usePointStyle": True, "padding": 15, "color": TICK_COLOR},
                },
                "tooltip": dict(TOOLTIP_DEFAULTS),
            },
            "scales": {} if is_circular else {
                "x": copy.deepcopy(X_SCALE_DEFAULTS),
                "y": copy.deepcopy(Y_SCALE_DEFAULTS),
            },
            "animation": dict(ANIMATION_DEFAULTS),
        },
    }
    if chart_type == "doughnut":
        config["options"]["cutout"] = "60%"
    return config
