from django.db import models


class StockOperation(models.TextChoices):
    INCREASE = "increase", "Increase"
    DECREASE = "decrease", "Decrease"
    SET = "set", "Set"


class StockAlertSeverity(models.TextChoices):
    OUT_OF_STOCK = "out_of_stock", "Out of stock"
    CRITICAL = "critical", "Critical"
    LOW = "low", "Low"
