from pydantic import BaseModel


class Tool:
    """A function the model may ask to call.

    Declaration only: the client never executes tools. Providers render the
    pydantic input schema into their own function-calling format.
    """

    def __init__(
        self,
        *,
        name: str,
        description: str,
        input_schema: type[BaseModel],
    ) -> None:
        if not name:
            raise ValueError("Tool name must be non-empty")
        self.name = name
        self.description = description
        self.input_schema = input_schema

    def parameters(self) -> dict:
        return self.input_schema.model_json_schema()

    def __repr__(self) -> str:
        return f"Tool(name={self.name!r})"
