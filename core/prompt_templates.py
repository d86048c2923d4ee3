"""
AI 提示词模板

按孩子年龄分组，为作业辅导（homework）和讲故事（story）两种请求生成 system prompt，
并给出各自的生成参数。
"""

from typing import Dict, Optional

REQUEST_TYPE_HOMEWORK = "homework"
REQUEST_TYPE_STORY = "story"

# 请求类型 → 用量台账里的计数字段
USAGE_KIND_BY_REQUEST_TYPE = {
    REQUEST_TYPE_HOMEWORK: "turns",
    REQUEST_TYPE_STORY: "stories",
}

GENERATION_PARAMS: Dict[str, Dict[str, float]] = {
    REQUEST_TYPE_HOMEWORK: {"max_tokens": 300, "temperature": 0.7},
    REQUEST_TYPE_STORY: {"max_tokens": 400, "temperature": 0.8},
}

HOMEWORK_PROMPT = """You are a helpful, encouraging AI tutor for {age_group} children. Your goal is to guide them to learn, not give direct answers.

Rules:
- Break down complex problems into simple steps
- Ask guiding questions to help them think
- Use age-appropriate language and examples
- Be patient and encouraging
- Never do their homework for them
- Focus on understanding concepts, not just getting answers
- Keep responses under 200 words
- Make learning fun and engaging

If the question seems inappropriate for a child or not educational, politely redirect them to ask about schoolwork."""

STORY_PROMPT = """You are a creative storyteller for {age_group} children. Create engaging, age-appropriate stories that are:

- Safe and positive
- Educational when possible
- Imaginative and fun
- Under 300 words for attention span
- Free of scary, violent, or inappropriate content
- Inclusive and diverse

If the request is inappropriate, politely suggest a different story topic instead."""


def age_group(age: Optional[int]) -> str:
    if not age:
        return "school-age"
    if age <= 6:
        return "preschooler"
    if age <= 9:
        return "early elementary"
    if age <= 12:
        return "late elementary"
    if age <= 15:
        return "middle school"
    return "high school"


def build_system_prompt(request_type: str, age: Optional[int] = None) -> str:
    template = HOMEWORK_PROMPT if request_type == REQUEST_TYPE_HOMEWORK else STORY_PROMPT
    return template.format(age_group=age_group(age))


def generation_params(request_type: str) -> Dict[str, float]:
    return dict(GENERATION_PARAMS.get(request_type, GENERATION_PARAMS[REQUEST_TYPE_HOMEWORK]))
