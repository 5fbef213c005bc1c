from unitable.validation.compiler import (
    RowValidator,
    ValidatorCompiler,
    compile_field,
    compile_table,
    parse_datetime,
)

__all__ = [
    "RowValidator",
    "ValidatorCompiler",
    "compile_field",
    "compile_table",
    "parse_datetime",
]
