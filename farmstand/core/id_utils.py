import shortuuid


def generate_shortuuid() -> str:
    return shortuuid.uuid()


def generate_order_id() -> str:
    return f"ord_{shortuuid.uuid()}"


def generate_sale_id() -> str:
    return f"sal_{shortuuid.uuid()}"
