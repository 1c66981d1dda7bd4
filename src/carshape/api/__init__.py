from carshape.api.result_io import load_result, result_to_dict, save_result

__all__ = [
    "load_result",
    "result_to_dict",
    "save_result",
]
