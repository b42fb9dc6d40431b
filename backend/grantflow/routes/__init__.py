from importlib import import_module

modules = [
    'proposals',
    'reviews',
    'decisions',
    'full_proposals',
    'reviewers',
]

for m in modules:
    import_module(f'.{m}', __name__)

__all__ = modules
