"""
Prompt templates - reusable system/user prompt pairs with typed parameters.

User prompts use `{name}` placeholders. Required parameters must be given;
optional ones fall back to their defaults.
"""
import json
import logging
from dataclasses import dataclass, field
from typing import Any

from app.errors import ErrorType
from app.exceptions import AppException

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PromptParameter:
    name: str
    type: str  # string | number | boolean | array | object
    required: bool
    description: str
    default: Any = None


@dataclass(frozen=True)
class PromptTemplate:
    id: str
    name: str
    description: str
    category: str  # chart | data | analysis | export
    system_prompt: str
    user_prompt_template: str
    parameters: tuple[PromptParameter, ...]
    required_output: tuple[str, ...] = ()


@dataclass(frozen=True)
class PromptPair:
    system_prompt: str
    user_prompt: str
    required_output: tuple[str, ...] = field(default_factory=tuple)


BAR_CHART = PromptTemplate(
    id="bar-chart",
    name="Bar Chart Generator",
    description="Generate optimized bar chart configurations",
    category="chart",
    system_prompt="""You are a professional data visualization expert specializing in creating beautiful, informative charts using Chart.js.
Your task is to analyze the provided data and generate an optimal bar chart configuration.

RULES:
1. Always return valid JSON that can be directly parsed
2. Include proper Chart.js configuration structure
3. Choose colors that are accessible and visually appealing
4. Add appropriate labels, titles, and descriptions
5. Include responsive design settings
6. Add interactive features like tooltips and legends
7. Consider data distribution for axis scaling
8. Include animation settings for smooth transitions

OUTPUT FORMAT:
{
  "config": {"type": "bar", "data": {"labels": [...], "datasets": [...]}, "options": {...}},
  "metadata": {"chartType": "bar", "dataPoints": number, "recommendations": [...]}
}""",
    user_prompt_template="""Generate a bar chart configuration for the following data:

Data: {data}
Description: {description}
Title: {title}
Theme: {theme}

Additional requirements:
- Focus on: {focus}
- Color scheme: {colors}
- Interactive features: {interactive}

Please analyze the data and create an optimal visualization.""",
    parameters=(
        PromptParameter("data", "object", True, "Chart data with labels and values"),
        PromptParameter("description", "string", True, "What the data represents"),
        PromptParameter("title", "string", True, "Chart title"),
        PromptParameter("theme", "string", False, "Visual theme", "default"),
        PromptParameter("focus", "string", False, "Main focus area", "general"),
        PromptParameter("colors", "string", False, "Color scheme", "default"),
        PromptParameter("interactive", "boolean", False, "Enable interactive features", True),
    ),
    required_output=("config", "metadata"),
)

LINE_CHART = PromptTemplate(
    id="line-chart",
    name="Line Chart Generator",
    description="Generate optimized line chart configurations",
    category="chart",
    system_prompt="""You are a data visualization expert specializing in time series and trend analysis using Chart.js line charts.

Your task is to analyze temporal data and create insightful line chart visualizations.

RULES:
1. Always return valid JSON
2. Use smooth curves for continuous data
3. Highlight trends and patterns
4. Include proper time-based axis formatting
5. Add trend lines if beneficial
6. Use appropriate point styles and sizes
7. Include confidence intervals if applicable
8. Optimize for mobile responsiveness

OUTPUT FORMAT:
{
  "config": {"type": "line", "data": {...}, "options": {...}},
  "metadata": {"chartType": "line", "trends": [...], "insights": [...], "recommendations": [...]}
}""",
    user_prompt_template="""Generate a line chart for time series data:

Data: {data}
Time period: {timePeriod}
Metric: {metric}
Focus: {focus}

Create a visualization that highlights trends and patterns.""",
    parameters=(
        PromptParameter("data", "object", True, "Time series data with labels and values"),
        PromptParameter("timePeriod", "string", True, "Time period for the data"),
        PromptParameter("metric", "string", True, "Metric being measured"),
        PromptParameter("focus", "string", False, "Analysis focus area", "trends"),
    ),
    required_output=("config", "metadata"),
)

DATA_SUMMARY = PromptTemplate(
    id="data-summary",
    name="Data Summary Analysis",
    description="Generate comprehensive data summaries with statistics",
    category="analysis",
    system_prompt="""You are a data analyst expert. Analyze the provided data and generate a comprehensive summary.

RULES:
1. Always return valid JSON
2. Include descriptive statistics
3. Identify patterns and outliers
4. Provide actionable insights
5. Suggest visualization recommendations
6. Highlight data quality issues

OUTPUT FORMAT:
{
  "summary": {
    "totalRecords": number,
    "columns": ["array of column names"],
    "statistics": {"column": {"min": number, "max": number, "mean": number, "median": number}},
    "quality": {"completeness": number, "issues": ["array of issues"]}
  },
  "insights": ["array of key insights"],
  "recommendations": ["array of recommendations"],
  "visualizations": ["suggested chart types"]
}""",
    user_prompt_template="""Analyze this dataset and provide a comprehensive summary:

Data: {data}
Context: {context}
Focus areas: {focus}

Include statistics, insights, and visualization recommendations.""",
    parameters=(
        PromptParameter("data", "object", True, "Dataset to analyze"),
        PromptParameter("context", "string", True, "Context or purpose of analysis"),
        PromptParameter("focus", "array", False, "Specific areas to focus on", []),
    ),
    required_output=("summary", "insights", "recommendations", "visualizations"),
)

BUILTIN_TEMPLATES = (BAR_CHART, LINE_CHART, DATA_SUMMARY)

TYPE_CHECKS = {
    "string": lambda v: isinstance(v, str),
    "number": lambda v: isinstance(v, (int, float)) and not isinstance(v, bool),
    "boolean": lambda v: isinstance(v, bool),
    "array": lambda v: isinstance(v, (list, tuple)),
    "object": lambda v: isinstance(v, dict),
}


def _render(value: Any) -> str:
    if isinstance(value, str):
        return value
    return json.dumps(value, ensure_ascii=False, default=str)


class PromptTemplateRegistry:
    """Templates by id. Each registry is independent; nothing is global."""

    def __init__(self, templates: tuple[PromptTemplate, ...] | list[PromptTemplate] = BUILTIN_TEMPLATES):
        self._templates: dict[str, PromptTemplate] = {t.id: t for t in templates}

    def register(self, template: PromptTemplate) -> None:
        self._templates[template.id] = template

    def get_template(self, template_id: str) -> PromptTemplate | None:
        return self._templates.get(template_id)

    def list_templates(self, category: str | None = None) -> list[PromptTemplate]:
        templates = list(self._templates.values())
        if category:
            templates = [t for t in templates if t.category == category]
        return templates

    def generate_prompt(self, template_id: str, params: dict[str, Any]) -> PromptPair | None:
        """
        Fill a template.

        Returns None for an unknown template id.

        Raises:
            AppException: TEMPLATE_ERROR when required parameters are missing
        """
        template = self.get_template(template_id)
        if template is None:
            return None

        params = params or {}
        missing = [p.name for p in template.parameters if p.required and p.name not in params]
        if missing:
            raise AppException(
                ErrorType.TEMPLATE_ERROR,
                f"Missing required parameters: {', '.join(missing)}",
                details={"template_id": template_id, "missing": missing},
            )

        filled = dict(params)
        for param in template.parameters:
            if not param.required and param.name not in filled and param.default is not None:
                filled[param.name] = param.default

        user_prompt = template.user_prompt_template
        for key, value in filled.items():
            user_prompt = user_prompt.replace(f"{{{key}}}", _render(value))

        logger.info(f"Generated prompt from template {template_id}")
        return PromptPair(
            system_prompt=template.system_prompt,
            user_prompt=user_prompt,
            required_output=template.required_output,
        )

    def validate_parameters(self, template_id: str, params: dict[str, Any]) -> dict:
        template = self.get_template(template_id)
        if template is None:
            return {"is_valid": False, "errors": [f'Template "{template_id}" not found'], "warnings": []}

        errors, warnings = [], []
        known = {p.name for p in template.parameters}
        for param in template.parameters:
            if param.name not in params:
                if param.required:
                    errors.append(f"Missing required parameter: {param.name}")
                continue
            check = TYPE_CHECKS.get(param.type)
            if check and not check(params[param.name]):
                errors.append(f'Parameter "{param.name}" should be a {param.type}')

        for name in params:
            if name not in known:
                warnings.append(f'Unknown parameter "{name}" is ignored')

        return {"is_valid": not errors, "errors": errors, "warnings": warnings}
