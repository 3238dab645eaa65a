# Offline mutation queue, replay registry and replay driver
