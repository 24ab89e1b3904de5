# src/codable_bff/ai_models.py

import typing

from pydantic import BaseModel, Field, field_validator


class Suggestion(BaseModel):
    type: str = "info"
    title: str = ""
    message: str = ""


class Complexity(BaseModel):
    time: str = "O(n)"
    space: str = "O(1)"


class FlowchartNode(BaseModel):
    id: str
    type: str = "process"
    label: str = ""
    description: typing.Optional[str] = None


class FlowchartEdge(BaseModel):
    # "from" is a keyword, so the field is aliased
    from_: str = Field(alias="from")
    to: str
    label: typing.Optional[str] = ""

    model_config = {"populate_by_name": True}


def _default_flowchart() -> "Flowchart":
    return Flowchart(
        nodes=[
            FlowchartNode(id="start", type="start", label="Start", description="Program begins"),
            FlowchartNode(id="main", type="process", label="Main Logic", description="Core functionality"),
            FlowchartNode(id="end", type="end", label="End", description="Program ends"),
        ],
        edges=[
            FlowchartEdge(from_="start", to="main"),
            FlowchartEdge(from_="main", to="end"),
        ],
    )


class Flowchart(BaseModel):
    nodes: typing.List[FlowchartNode] = []
    edges: typing.List[FlowchartEdge] = []


class CodeAnalysisResult(BaseModel):
    score: int = 75
    summary: str = "Code analysis completed."
    explanation: str = "Code structure appears to be valid."
    suggestions: typing.List[Suggestion] = []
    complexity: Complexity = Complexity()
    flowchart: Flowchart = Field(default_factory=_default_flowchart)

    @field_validator("score", mode="before")
    @classmethod
    def clamp_score(cls, v: typing.Any) -> int:
        # A missing or zero score falls back to the neutral default
        try:
            score = int(float(v))
        except (TypeError, ValueError):
            return 75
        if score == 0:
            return 75
        return max(0, min(100, score))


class ExecutionResult(BaseModel):
    success: bool = True
    output: typing.Optional[str] = "Expected output"
    error: typing.Optional[str] = None
    execution_time: typing.Optional[str] = "< 1ms"
    memory_usage: typing.Optional[str] = "< 1MB"


class OptimizationSuggestion(BaseModel):
    type: str = "best_practice"
    title: str = ""
    description: str = ""
    code_example: typing.Optional[str] = None


class ProblemSolution(BaseModel):
    solution_code: str
    explanation: str = "Solution generated for the given problem statement."
    execution_result: ExecutionResult = ExecutionResult()
    optimization_suggestions: typing.List[OptimizationSuggestion] = []


class Improvement(BaseModel):
    type: str = "general"
    description: str = ""
    impact: str = ""


class CodeOptimization(BaseModel):
    optimized_code: str
    improvements: typing.List[Improvement] = []


class ChatReply(BaseModel):
    conversation_id: typing.Optional[str] = None
    response: str
    provider_id: str
