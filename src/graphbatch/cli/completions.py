from graphbatch.enums import OutputMode


def complete_output_mode(value: str):
    for mode in OutputMode.__members__.values():
        if mode.startswith(value):
            yield mode
