"""Built-in providers for known coding-agent transcript layouts."""