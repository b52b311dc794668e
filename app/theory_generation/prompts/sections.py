"""Prompt templates for the three content sections of a unit.

Each template receives the dimension and level configuration and asks
for one JSON document. Wording is free to change as long as the JSON
skeleton keeps the fields the validators require.
"""

from __future__ import annotations

from app.theory_generation.dimensions import (
    DimensionCatalog,
    DimensionConfig,
    LevelConfig,
)
from app.theory_generation.errors import ConfigurationError
from app.theory_generation.models import GenerationUnit, SectionKind

# Temperature: 0.7 (varied prose)
# Response format: application/json

_CONTEXT_BLOCK = """\
<context>
思维维度: {dimension_name}
维度描述: {dimension_description}
核心关注: {dimension_focus}

Level: {level} - {level_title}
难度: {difficulty}（认知负荷: {cognitive_load}）
Level描述: {level_description}
学习目标: {learning_goals}
具体目标:
{objectives}
</context>"""

CONCEPTS_PROMPT = """\
<role>
你是一位资深的批判性思维教育专家和课程设计师，擅长把复杂的思维理论
转化为高中生及以上读者容易理解的学习内容。
</role>

{context}

<task>
为上述维度和Level撰写概念讲解。至少包含2个核心概念小节，每个小节
至少列出2个要点，并配合生活化的例子。
</task>

<rules>
- 引言200-300字，激发学习兴趣。
- 每个小节的content 500-800字，准确、深入但不过于学术化。
- 总结150-200字，强化关键学习点。
- 紧扣当前Level的认知负荷和学习目标。
- 中文表达自然流畅。
</rules>

<output_format>
只输出JSON（不要markdown代码块，不要其他文字）:
{{
  "title": "概念标题",
  "introduction": "引言",
  "sections": [
    {{
      "heading": "核心概念1",
      "content": "详细解释",
      "keyPoints": ["要点1", "要点2", "要点3"],
      "examples": ["示例1", "示例2"]
    }},
    {{
      "heading": "核心概念2",
      "content": "详细解释",
      "keyPoints": ["要点1", "要点2"],
      "examples": ["示例1"]
    }}
  ],
  "summary": "总结",
  "nextSteps": "下一步学习建议"
}}
</output_format>
"""

MODELS_PROMPT = """\
<role>
你是一位批判性思维方法论专家，擅长设计实用的思维分析工具和框架。
</role>

{context}

<task>
为上述维度和Level设计一个结构化的分析框架，包含4-6个有逻辑递进
关系的操作步骤（不能少于4个，也不能多于6个）。
</task>

<rules>
- introduction 250-300字，说明框架的用途、适用场景和核心价值。
- 每个步骤的description 300-400字：做什么、如何做、预期结果。
- 每个步骤都必须有tips（实用技巧）和commonMistakes（常见错误及避免方法）。
- applicationExample 600-800字，完整演示每个步骤的应用，贴近学生生活。
- 复杂度符合当前Level。
</rules>

<output_format>
只输出JSON（不要markdown代码块，不要其他文字）:
{{
  "frameworkName": "框架名称",
  "frameworkType": "框架类型（矩阵分析、流程图、检查清单等）",
  "introduction": "框架介绍",
  "steps": [
    {{
      "step": "步骤1：步骤名称",
      "description": "详细操作说明",
      "tips": "实用技巧",
      "commonMistakes": "常见错误和避免方法",
      "example": "简短示例"
    }}
  ],
  "visualization": {{
    "type": "flowchart/mindmap/matrix/checklist",
    "description": "如何绘制图表"
  }},
  "applicationExample": "完整应用示例",
  "whenToUse": "适用场景说明",
  "relatedFrameworks": ["相关框架1", "相关框架2"]
}}
</output_format>
"""

DEMONSTRATIONS_PROMPT = """\
<role>
你是一位批判性思维案例分析专家，擅长通过好坏对比帮助学习者理解概念。
</role>

{context}

<task>
为上述维度和Level设计一个典型的对比案例：同一情境下的优秀分析与
常见错误分析，并给出专家点评和至少3条启示。
</task>

<rules>
- scenario 500-600字，包含具体的人物、场景、冲突和细节。
- goodAnalysis.content 700-900字，展示完整的思维过程。
- poorAnalysis.content 600-800字，展示完整的错误推理链条。
- expertCommentary 500-600字，指出两种分析的关键差异及深层原因。
- keyLessons 至少3条，具体、可操作。
- 好坏对比要明显，但符合实际情况，不刻意夸张。
</rules>

<output_format>
只输出JSON（不要markdown代码块，不要其他文字）:
{{
  "scenario": "情境描述",
  "question": "核心思考问题",
  "goodAnalysis": {{
    "title": "优秀分析示例",
    "content": "详细分析过程",
    "strengths": ["优点1", "优点2", "优点3"],
    "appliedConcepts": ["应用的概念1", "应用的概念2"]
  }},
  "poorAnalysis": {{
    "title": "常见错误分析",
    "content": "错误的分析过程",
    "problems": ["问题1", "问题2", "问题3"],
    "missedPoints": ["遗漏的要点1", "遗漏的要点2"]
  }},
  "expertCommentary": "专家点评",
  "keyLessons": ["启示1", "启示2", "启示3"],
  "reflectionQuestions": ["反思问题1", "反思问题2"]
}}
</output_format>
"""

SECTION_PROMPTS: dict[SectionKind, str] = {
    SectionKind.CONCEPTS: CONCEPTS_PROMPT,
    SectionKind.MODELS: MODELS_PROMPT,
    SectionKind.DEMONSTRATIONS: DEMONSTRATIONS_PROMPT,
}

SYSTEM_PROMPT = "你是批判性思维课程内容生成助手。只输出合法的JSON。"


def build_context_block(
    dimension: DimensionConfig, level: LevelConfig,
) -> str:
    """Render the shared <context> section for one unit."""
    objectives = "\n".join(f"- {obj}" for obj in level.objectives) or "- 无"
    return _CONTEXT_BLOCK.format(
        dimension_name=dimension.name,
        dimension_description=dimension.description,
        dimension_focus=dimension.focus,
        level=level.level,
        level_title=level.title,
        difficulty=level.difficulty,
        cognitive_load=level.cognitive_load or "-",
        level_description=level.description,
        learning_goals=level.learning_goals or level.description,
        objectives=objectives,
    )


class PromptBuilder:
    """Builds section prompts from the dimension catalog."""

    def __init__(self, catalog: DimensionCatalog) -> None:
        self._catalog = catalog

    def build(self, unit: GenerationUnit, section_kind: SectionKind) -> str:
        """Build the prompt for one section of a unit.

        Raises:
            ConfigurationError: Unknown dimension, level or section kind.
        """
        template = SECTION_PROMPTS.get(section_kind)
        if template is None:
            msg = f"Unknown section kind: {section_kind!r}"
            raise ConfigurationError(msg)
        dimension = self._catalog.get_dimension(unit.dimension_id)
        level = self._catalog.get_level(unit.dimension_id, unit.level)
        return template.format(context=build_context_block(dimension, level))
