"""
Expression package.

Parses and evaluates the small condition grammar shared by visibility
rules, wizard navigation rules and eligibility rule logic.

Modules of interest:
- nodes: The VariableRef / Literal / Operation node types and operators.
- parser: Text surface (``Q == 'yes' AND R IN ['a', 'b']``) and its canonical form.
- json_logic: JSON-logic surface used for stored rule logic.
- evaluator: Evaluation, truthiness and referenced-key collection.
"""
