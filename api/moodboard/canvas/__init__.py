"""Canvas command processing: validation, spatial reasoning, data binding, execution."""
