from . import calculator, dashboard, metal_types, products, quote_view, settings, stone_types

__all__ = [
	"dashboard",
	"calculator",
	"products",
	"metal_types",
	"stone_types",
	"settings",
	"quote_view",
]
