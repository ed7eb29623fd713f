# Interactive (questionary) presentation layer
