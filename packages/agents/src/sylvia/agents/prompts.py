"""Agent Prompt 模板

LLM 面向英文 prompt；每个模板都要求只返回一个 JSON 对象，
由 sylvia.provider.structured 负责截取与校验。
"""

import json
from collections.abc import Mapping

from sylvia.core.models import Task, TimeMetrics

PLANNER_TEMPLATE = """\
You are the PLANNER agent. Analyze this task and decide whether it needs subtasks.

TASK: {title}
DESCRIPTION: {description}
CONTEXT: {context}
ESTIMATED HOURS: {estimated_hours}

Rules:
1. Only create subtasks if the task is genuinely complex (>2 hours or multiple distinct phases)
2. Maximum 7 subtasks
3. Each subtask should be 15-90 minutes of focused work (0.25-1.5 hours)
4. Each description states clear "done when" criteria
5. Dependencies are indices of prerequisite subtasks in the same list

Return JSON only:
{{
  "needsSubtasks": boolean,
  "reasoning": "why or why not",
  "estimatedComplexity": 1-5,
  "suggestedDuration": hours,
  "subtasks": [
    {{
      "title": "Specific actionable title",
      "description": "Clear done-when criteria",
      "estimatedHours": number,
      "tags": ["relevant", "tags"],
      "dependencies": [index_of_prerequisite_subtasks]
    }}
  ]
}}"""

ASSESSOR_TEMPLATE = """\
You are the ASSESSOR agent. Score this completed task on 4 dimensions (1-5 integer scale).

TASK: {title}
DESCRIPTION: {description}
SUBTASKS: {subtask_count} subtasks
ESTIMATED: {estimated_hours:.1f}h
ACTUAL: {actual_hours:.1f}h
SPEED RATIO: {speed_ratio:.2f} ({timing})

USER'S RECENT AVERAGES:
- Difficulty: {avg_difficulty:.1f}
- Innovation: {avg_innovation:.1f}
- Quality: {avg_quality:.1f}
- Speed: {avg_speed:.1f}

SCORING GUIDELINES:
DIFFICULTY (1=trivial, 5=extremely challenging): technical complexity, unknowns, learning required.
INNOVATION (1=routine, 5=breakthrough): novel approaches, creative solutions, new techniques.
QUALITY (1=rough, 5=excellent): thoroughness, attention to detail, robustness.
SPEED (1=very slow, 5=very fast): actual vs estimated time, adjusted for complexity.

Return JSON only:
{{
  "difficulty": 1-5,
  "innovation": 1-5,
  "quality": 1-5,
  "speed": 1-5,
  "reasoning": {{
    "difficulty": "why this score",
    "innovation": "why this score",
    "quality": "why this score",
    "speed": "why this score"
  }},
  "highlights": ["notable achievements"],
  "improvements": ["suggestions for next time"]
}}"""

INSIGHTS_TEMPLATE = """\
You are an AI productivity analyst. Based on this user's task completion data, generate 3-5 actionable insights.

COMPLETION PATTERNS:
- Sample size: {sample_size} tasks
- Optimal hours: {optimal_hours}
- Current recommendation: {recommendation}

COMPLEXITY HANDLING:
{difficulty_lines}

Return JSON only:
{{
  "insights": [
    {{
      "type": "scheduling|estimation|difficulty|energy",
      "title": "Brief insight title",
      "description": "Actionable advice based on data",
      "confidence": 0.1-1.0,
      "actionable": "Specific next step"
    }}
  ]
}}"""


def planner_prompt(task: Task) -> str:
    return PLANNER_TEMPLATE.format(
        title=task.title,
        description=task.description or "No description",
        context=json.dumps(task.context, ensure_ascii=False),
        estimated_hours=(
            task.estimated_hours if task.estimated_hours is not None else "Not specified"
        ),
    )


def assessor_prompt(
    task: Task,
    metrics: TimeMetrics,
    averages: Mapping[str, float],
    subtask_count: int,
) -> str:
    return ASSESSOR_TEMPLATE.format(
        title=task.title,
        description=task.description or "No description",
        subtask_count=subtask_count,
        estimated_hours=metrics.estimated_hours,
        actual_hours=metrics.actual_hours,
        speed_ratio=metrics.speed_ratio,
        timing="ON TIME" if metrics.was_on_time else "OVER TIME",
        avg_difficulty=averages["difficulty"],
        avg_innovation=averages["innovation"],
        avg_quality=averages["quality"],
        avg_speed=averages["speed"],
    )


def insights_prompt(
    sample_size: int,
    optimal_hours: list[tuple[int, float, float]],
    recommended_hour: int | None,
    difficulty_groups: list[tuple[int, int, float | None, float]],
) -> str:
    """
    Args:
        optimal_hours: (hour, avg_quality, avg_speed)
        difficulty_groups: (difficulty, count, avg_time_accuracy, avg_satisfaction)
    """
    hours_text = ", ".join(
        f"{hour}:00 (quality: {quality:.1f}, speed: {speed:.1f})"
        for hour, quality, speed in optimal_hours
    ) or "none with enough samples"
    lines = []
    for difficulty, count, accuracy, satisfaction in difficulty_groups:
        accuracy_text = f"{accuracy * 100:.0f}%" if accuracy is not None else "unmeasured"
        lines.append(
            f"- Difficulty {difficulty}: {count} tasks, time accuracy: {accuracy_text}, "
            f"satisfaction: {satisfaction:.1f}/5"
        )
    return INSIGHTS_TEMPLATE.format(
        sample_size=sample_size,
        optimal_hours=hours_text,
        recommendation=(
            f"Best next slot is {recommended_hour}:00"
            if recommended_hour is not None
            else "Need more data"
        ),
        difficulty_lines="\n".join(lines) or "- No scored tasks",
    )
