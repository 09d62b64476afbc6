from .order import Order, OrderOption, PaymentEvent

__all_models = [Order, OrderOption, PaymentEvent]
