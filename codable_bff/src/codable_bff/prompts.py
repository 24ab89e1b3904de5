# src/codable_bff/prompts.py

import re
import typing

ANALYSIS_TEMPLATE = """
You are an expert code analyzer. Analyze the following {language} code and provide a comprehensive analysis.

Code to analyze:
```{language}
{code}
```

IMPORTANT: You must respond with valid JSON only. Do not include any text before or after the JSON.

Provide your analysis in this exact JSON format:
{{
  "score": <number between 0-100>,
  "summary": "<brief summary of what the code does>",
  "explanation": "<detailed step-by-step explanation>",
  "suggestions": [
    {{
      "type": "success|warning|error|info",
      "title": "<suggestion title>",
      "message": "<detailed suggestion message>"
    }}
  ],
  "complexity": {{
    "time": "<time complexity in Big O notation>",
    "space": "<space complexity in Big O notation>"
  }},
  "flowchart": {{
    "nodes": [
      {{"id": "start", "type": "start", "label": "Start", "description": "Program entry point"}},
      {{"id": "process1", "type": "process", "label": "Main Logic", "description": "Core functionality"}},
      {{"id": "end", "type": "end", "label": "End", "description": "Program exit"}}
    ],
    "edges": [
      {{"from": "start", "to": "process1", "label": ""}},
      {{"from": "process1", "to": "end", "label": ""}}
    ]
  }}
}}

Focus on:
- Code quality and best practices
- Performance optimization opportunities
- Security considerations
- Readability and maintainability
- Potential bugs or issues
- Algorithm efficiency
- Generate a logical flowchart representation

Provide actionable insights and be constructive in your feedback.
"""

SOLUTION_TEMPLATE = """
You are an expert programmer. Solve the following programming problem in {language}.

Problem Statement:
{problem}

IMPORTANT: You must respond with valid JSON only. Do not include any text before or after the JSON.
Generate clean, properly formatted {language} code with correct syntax and indentation.

Provide your solution in this exact JSON format:
{{
  "solution_code": "<complete, working {language} code solution>",
  "explanation": "<detailed explanation of the solution approach>",
  "execution_result": {{
    "success": true,
    "output": "<expected output>",
    "execution_time": "<estimated execution time>",
    "memory_usage": "<estimated memory usage>"
  }},
  "optimization_suggestions": [
    {{
      "type": "performance|readability|best_practice",
      "title": "<optimization title>",
      "description": "<detailed description>",
      "code_example": "<optional improved code example>"
    }}
  ]
}}

Requirements for {language} code:
- Write clean, well-commented code with proper indentation
- Use correct {language} syntax and conventions
- Include proper error handling and input validation where appropriate
- Follow best practices for {language}
- Provide efficient algorithms

Focus on correctness, efficiency, and readability.
"""

OPTIMIZATION_TEMPLATE = """
Analyze and optimize the following {language} code. Provide an improved version with explanations.

Original Code:
```{language}
{code}
```

IMPORTANT: Respond with valid JSON only.

Provide the response in this JSON format:
{{
  "optimized_code": "<improved version of the {language} code with proper formatting and syntax>",
  "improvements": [
    {{
      "type": "<type of improvement>",
      "description": "<what was improved>",
      "impact": "<performance/readability impact>"
    }}
  ]
}}

Focus on:
- Performance optimizations
- Code readability improvements
- Best practices for {language}
- Security improvements
- Memory efficiency
- Proper {language} syntax and formatting
"""

CHAT_PERSONA = "You are Codable AI, an expert coding assistant."

_CODE_REQUEST = re.compile(r"write|create|generate|build|make.*code|function|class|method|algorithm", re.IGNORECASE)
_EXPLANATION_REQUEST = re.compile(r"explain|what.*does|how.*work|understand|clarify|describe", re.IGNORECASE)
_CODE_REVIEW = re.compile(r"review|check|analyze|debug|fix|error|bug|problem", re.IGNORECASE)
_HAS_CODE = re.compile(r"```[\s\S]*```|`[^`]+`")

_CHAT_INSTRUCTIONS = {
    "code": (
        "The user is asking for code generation.\n"
        "Provide ONLY the requested code with minimal explanation. Format your response as:\n"
        "```[language]\n[clean, working code here]\n```\n"
        "Brief explanation: [1-2 sentences about what the code does]\n"
        "Keep it concise and focused on the code they requested."
    ),
    "explanation": (
        "The user wants an explanation.\n"
        "Provide a clear, detailed explanation. If there's code involved, break it down step by step.\n"
        "Use markdown formatting. Be thorough but concise."
    ),
    "review": (
        "The user needs code review or debugging help.\n"
        "Provide:\n"
        "1. **Issues Found**: List any bugs, errors, or problems\n"
        "2. **Fixes**: Show corrected code if needed\n"
        "3. **Improvements**: Suggest optimizations or best practices\n"
        "4. **Explanation**: Explain what was wrong and why\n"
        "Use code blocks for any code examples. Be specific and actionable."
    ),
    "general": (
        "Provide a helpful, accurate response. If the question involves code, include relevant code examples.\n"
        "Keep responses focused and practical. Use markdown formatting."
    ),
}


def analysis_prompt(code: str, language: str) -> str:
    return ANALYSIS_TEMPLATE.format(code=code, language=language)


def solution_prompt(problem: str, language: str) -> str:
    return SOLUTION_TEMPLATE.format(problem=problem, language=language)


def optimization_prompt(code: str, language: str) -> str:
    return OPTIMIZATION_TEMPLATE.format(code=code, language=language)


def chat_intent(message: str) -> str:
    has_code = bool(_HAS_CODE.search(message))
    if _CODE_REQUEST.search(message) and not has_code:
        return "code"
    if _EXPLANATION_REQUEST.search(message) or has_code:
        return "explanation"
    if _CODE_REVIEW.search(message):
        return "review"
    return "general"


def chat_prompt(message: str, context: typing.Optional[str] = None) -> str:
    lines = [
        CHAT_PERSONA,
        f"User request: {message}",
    ]
    if context:
        lines.append(f"Context: {context}")
    lines.append(_CHAT_INSTRUCTIONS[chat_intent(message)])
    return "\n\n".join(lines)
