"""Widget catalog implementation.

``logger`` is provided by the gateway when the module is loaded.
"""

import operator

WIDGETS = [
    {"id": 1, "name": "sprocket", "price": 10.0},
    {"id": 2, "name": "gear", "price": 25.5},
    {"id": 3, "name": "flange", "price": 42.0},
]

COMPARATORS = {
    "=": operator.eq,
    "<": operator.lt,
    ">": operator.gt,
    "<=": operator.le,
    ">=": operator.ge,
}


def _matches(widget, parameter):
    if parameter.key not in widget:
        return True
    expected = parameter.value
    if parameter.key in ("id", "price"):
        try:
            expected = float(expected)
        except (TypeError, ValueError):
            return False
    compare = COMPARATORS.get(parameter.op, operator.eq)
    return compare(widget[parameter.key], expected)


def list_widgets(parameters):
    results = [w for w in WIDGETS if all(_matches(w, p) for p in parameters)]
    logger.debug(f"{len(results)} widget(s) match {parameters.count()} filter(s)")
    return {"results": results}


def create_widget(parameters):
    name = parameters.get("name")
    price = parameters.get("price")
    if name is None or price is None:
        return {"httpCode": 400, "results": []}

    widget = {"id": max(w["id"] for w in WIDGETS) + 1, "name": name.value, "price": float(price.value)}
    WIDGETS.append(widget)
    logger.info(f"Created widget {widget['id']}")
    return {"httpCode": 201, "results": [widget]}


class WidgetDetail:
    """Lookup of one widget by identifier."""

    def show(self, parameters):
        requested = parameters.get("id")
        if requested is None:
            return {"httpCode": 400, "results": []}
        results = [w for w in WIDGETS if str(w["id"]) == str(requested.value)]
        return {"httpCode": 200 if results else 404, "results": results}
